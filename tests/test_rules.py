from datetime import date
from decimal import Decimal

from finance_tracker.models import (
    Account,
    BasicCondition,
    ConditionGroup,
    ReconciliationRule,
    Transaction,
)
from finance_tracker.rules import (
    apply_rules_to_transactions,
    evaluate_condition,
    evaluate_conditions,
    find_matching_transactions,
)


def _tx(description: str = "Coffee Shop", amount: str = "12.00", **kwargs) -> Transaction:
    kwargs.setdefault("date", date(2024, 3, 1))
    kwargs.setdefault("type_id", "default-expense-purchase")
    return Transaction(description=description, amount=Decimal(amount), **kwargs)


def _cond(field: str, operator: str, value: str = "", **kwargs) -> BasicCondition:
    return BasicCondition(field=field, operator=operator, value=value, **kwargs)


def test_condition_chain_folds_left_with_preceding_logic():
    # (description contains coffee AND amount > 10) OR category metadata is Dining
    conditions = [
        _cond("description", "contains", "coffee", next_logic="AND"),
        _cond("amount", "greater_than", "10", next_logic="OR"),
        _cond("metadata", "equals", "dining", metadata_key="Category"),
    ]

    assert evaluate_conditions(_tx("Coffee Shop", "12.00"), conditions)
    assert not evaluate_conditions(_tx("Coffee Shop", "5.00"), conditions)
    assert evaluate_conditions(
        _tx("Corner Diner", "5.00", metadata={"Category": "Dining"}), conditions
    )


def test_group_counts_as_one_term():
    # coffee AND (amount < 5 OR amount > 100)
    conditions = [
        _cond("description", "contains", "coffee"),
        ConditionGroup(
            conditions=[
                _cond("amount", "less_than", "5", next_logic="OR"),
                _cond("amount", "greater_than", "100"),
            ]
        ),
    ]

    assert evaluate_conditions(_tx("Coffee", "4.00"), conditions)
    assert evaluate_conditions(_tx("Coffee", "150.00"), conditions)
    assert not evaluate_conditions(_tx("Coffee", "12.00"), conditions)
    assert not evaluate_conditions(_tx("Tea", "4.00"), conditions)


def test_empty_chain_matches_everything():
    assert evaluate_conditions(_tx(), [])


def test_text_operators_normalize_whitespace_and_case():
    tx = _tx("  STARBUCKS   Store #12 ")

    assert evaluate_condition(tx, _cond("description", "starts_with", "starbucks store"))
    assert evaluate_condition(tx, _cond("description", "ends_with", "#12"))
    assert evaluate_condition(tx, _cond("description", "equals", "starbucks store #12"))
    assert evaluate_condition(tx, _cond("description", "does_not_contain", "peets"))
    assert evaluate_condition(tx, _cond("description", "regex_match", r"store\s+#\d+"))


def test_inline_or_tokens():
    tx = _tx("Peets Coffee")

    assert evaluate_condition(tx, _cond("description", "contains", "starbucks || peets"))
    assert not evaluate_condition(tx, _cond("description", "does_not_contain", "tea || peets"))
    assert evaluate_condition(tx, _cond("description", "does_not_contain", "tea || juice"))


def test_conditions_that_never_match():
    tx = _tx()

    assert not evaluate_condition(tx, _cond("description", "contains", ""))
    assert not evaluate_condition(tx, _cond("description", "contains", "   "))
    assert not evaluate_condition(tx, _cond("nonexistent", "contains", "coffee"))
    assert not evaluate_condition(tx, _cond("description", "sounds_like", "coffee"))
    assert not evaluate_condition(tx, _cond("description", "regex_match", "(unclosed"))
    assert not evaluate_condition(tx, _cond("amount", "equals", "twelve"))


def test_amount_equals_within_a_cent():
    tx = _tx(amount="12.004")

    assert evaluate_condition(tx, _cond("amount", "equals", "12"))
    assert not evaluate_condition(tx, _cond("amount", "equals", "12.02"))


def test_metadata_exists():
    tx = _tx(metadata={"Check Number": "1042", "Memo": "  "})

    assert evaluate_condition(tx, _cond("metadata", "exists", metadata_key="Check Number"))
    assert not evaluate_condition(tx, _cond("metadata", "exists", metadata_key="Memo"))
    assert not evaluate_condition(tx, _cond("metadata", "exists", metadata_key="Missing"))


def test_account_conditions_use_id_for_equals_and_name_otherwise():
    accounts = [Account(id="acct-1", name="Chase Sapphire")]
    tx = _tx(account_id="acct-1")

    assert evaluate_condition(tx, _cond("accountId", "equals", "acct-1"), accounts)
    assert not evaluate_condition(tx, _cond("accountId", "equals", "Chase Sapphire"), accounts)
    assert evaluate_condition(tx, _cond("accountId", "contains", "sapphire"), accounts)


def test_description_conditions_read_original_description():
    tx = _tx("Coffee", original_description="SQ *BLUE BOTTLE 8831")

    assert evaluate_condition(tx, _cond("description", "contains", "blue bottle"))
    assert not evaluate_condition(tx, _cond("description", "equals", "coffee"))


# ----------------------------------------------------------------------------
# Applying rules
# ----------------------------------------------------------------------------


def test_rules_apply_progressively_and_record_ids():
    first = ReconciliationRule(
        id="r-payee",
        conditions=[_cond("description", "contains", "starbucks")],
        set_payee_id="payee-sbux",
        set_description="Starbucks",
    )
    second = ReconciliationRule(
        id="r-category",
        conditions=[_cond("payeeId", "equals", "payee-sbux")],
        set_category_id="cat-coffee",
        assign_tag_ids=["tag-habit"],
    )
    original = _tx("STARBUCKS STORE 1234")

    (updated,) = apply_rules_to_transactions([original], [first, second])

    assert updated.description == "Starbucks"
    assert updated.original_description == "STARBUCKS STORE 1234"
    assert updated.payee_id == "payee-sbux"
    assert updated.category_id == "cat-coffee"
    assert updated.tag_ids == ["tag-habit"]
    assert updated.applied_rule_ids == ["r-payee", "r-category"]
    # inputs are never mutated
    assert original.payee_id is None
    assert original.original_description is None


def test_skip_import_rule_marks_row_ignored():
    rule = ReconciliationRule(
        id="r-skip", conditions=[_cond("description", "contains", "transfer")], skip_import=True
    )

    kept, ignored = apply_rules_to_transactions(
        [_tx("Grocery"), _tx("Online Transfer To Savings")], [rule]
    )

    assert not kept.is_ignored
    assert kept.applied_rule_ids == []
    assert ignored.is_ignored
    assert ignored.applied_rule_ids == ["r-skip"]


def test_find_matching_transactions_only_returns_changes():
    rule = ReconciliationRule(
        conditions=[_cond("description", "contains", "coffee")], set_category_id="cat-coffee"
    )
    already = _tx("Coffee Shop", category_id="cat-coffee")
    pending = _tx("Coffee Cart")
    other = _tx("Bookstore")

    pairs = find_matching_transactions([already, pending, other], rule)

    assert [(orig.id, new.category_id) for orig, new in pairs] == [(pending.id, "cat-coffee")]
    assert pending.category_id is None


def test_legacy_and_untagged_rule_payloads_load():
    legacy = ReconciliationRule.model_validate(
        {
            "id": "legacy",
            "descriptionContains": "uber",
            "amountEquals": 25,
            "matchLogic": "or",
            "setCategoryId": "",
        }
    )
    assert [(c.field, c.operator, c.value) for c in legacy.conditions] == [
        ("description", "contains", "uber"),
        ("amount", "equals", "25"),
    ]
    assert legacy.conditions[0].next_logic == "OR"
    assert legacy.set_category_id is None

    untagged = ReconciliationRule.model_validate(
        {
            "conditions": [
                {"field": "description", "operator": "contains", "value": "a", "nextLogic": "or"},
                {"conditions": [{"field": "amount", "operator": "less_than", "value": 3}]},
            ]
        }
    )
    assert isinstance(untagged.conditions[0], BasicCondition)
    assert isinstance(untagged.conditions[1], ConditionGroup)
    assert untagged.conditions[1].conditions[0].value == "3"


def test_and_then_or_chain_with_account_fallback():
    conditions = [
        _cond("description", "contains", "STARBUCKS", next_logic="AND"),
        _cond("amount", "greater_than", "5", next_logic="OR"),
        _cond("accountId", "equals", "acc1"),
    ]

    assert evaluate_conditions(_tx("STARBUCKS #123", "3.50", account_id="acc1"), conditions)
    assert not evaluate_conditions(_tx("STARBUCKS #123", "3.50", account_id="acc2"), conditions)
