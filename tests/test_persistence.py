from datetime import date
from decimal import Decimal

from db.client import session_scope

from finance_tracker.models import Transaction
from finance_tracker.persistence import (
    DEFAULT_ACCOUNT_ID,
    DEFAULT_USER_ID,
    default_categories,
    load_collections,
    migrate_collections,
    save_collection,
)
from tests.helpers.db import seed_collections, stored_collections


def test_save_and_load_collections_round_trip(db_url):
    tx = Transaction(
        date=date(2024, 3, 1),
        description="Coffee",
        amount=Decimal("4.50"),
        type_id="default-expense-purchase",
        payee_id="payee-1",
    )

    with session_scope(database_url=db_url) as session:
        save_collection(session, "transactions", [tx])
        save_collection(session, "settings", {"currency": "USD"})

    with session_scope(database_url=db_url) as session:
        loaded = load_collections(session)

    assert loaded["settings"] == {"currency": "USD"}
    (row,) = loaded["transactions"]
    assert row["typeId"] == "default-expense-purchase"
    assert row["counterpartyId"] == "payee-1"
    assert row["amount"] == 4.5
    assert Transaction.model_validate(row) == tx


def test_save_overwrites_whole_collection(db_url):
    seed_collections(database_url=db_url, collections={"tags": [{"id": "t1", "name": "A"}]})
    seed_collections(database_url=db_url, collections={"tags": [{"id": "t2", "name": "B"}]})

    assert stored_collections(db_url)["tags"] == [{"id": "t2", "name": "B"}]


def test_migrate_empty_store_fills_defaults():
    data = migrate_collections({})

    assert data["users"] == [{"id": DEFAULT_USER_ID, "name": "Primary User", "isDefault": True}]
    assert data["categories"] == default_categories()
    assert len(data["categories"]) == 11
    assert len(data["transactionTypes"]) == 13
    assert [t["id"] for t in data["accountTypes"]] == [
        "default-bank",
        "default-cc",
        "default-general",
    ]
    (account,) = data["accounts"]
    assert account["id"] == DEFAULT_ACCOUNT_ID
    assert account["accountTypeId"] == "default-general"
    assert data["transactions"] == []


def test_migrate_legacy_string_categories():
    data = migrate_collections({"categories": ["Food", "Gas Station"]})

    ids = [c["id"] for c in data["categories"]]
    assert [c["name"] for c in data["categories"]] == ["Food", "Gas Station"]
    assert ids[0].startswith("migrated-food-")
    assert ids[1].startswith("migrated-gas-station-")
    assert len(ids[1]) == len("migrated-gas-station-") + 4


def test_migrate_assigns_default_user_to_transactions():
    users = [{"id": "u-main", "name": "Me", "isDefault": True}]
    raw = {
        "users": users,
        "transactions": [
            {"id": "a", "date": "2024-01-01", "description": "x", "amount": 1, "typeId": "t"},
            {
                "id": "b",
                "date": "2024-01-01",
                "description": "y",
                "amount": 1,
                "typeId": "t",
                "userId": "u-other",
            },
        ],
    }

    data = migrate_collections(raw)

    assert [tx["userId"] for tx in data["transactions"]] == ["u-main", "u-other"]
    assert "userId" not in raw["transactions"][0]


def test_migrate_keeps_existing_reference_data():
    raw = {
        "accountTypes": [{"id": "at-general", "name": "General"}],
        "accounts": [{"id": "acct-1", "name": "Checking"}],
        "categories": [{"id": "c1", "name": "Food"}],
    }

    data = migrate_collections(raw)

    assert data["accountTypes"] == raw["accountTypes"]
    assert data["accounts"] == raw["accounts"]
    assert data["categories"] == raw["categories"]


def test_migrate_default_account_reuses_general_type():
    data = migrate_collections({"accountTypes": [{"id": "at-general", "name": "General"}]})

    assert data["accountTypes"] == [{"id": "at-general", "name": "General"}]
    assert data["accounts"][0]["accountTypeId"] == "at-general"
