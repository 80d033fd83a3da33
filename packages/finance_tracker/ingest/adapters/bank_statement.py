"""Adapter: mapped bank-statement rows -> ``Transaction`` records.

Mapping rules
-------------
- ``date``: parsed with :func:`normalizers.parse_date`; unparseable -> row dropped
- ``description``: cleaned and title-cased; ``"Unspecified"`` when unmapped
- amount/direction:
  - credit + debit columns: a positive credit is income, otherwise a positive
    debit is an expense
  - single amount column: negative is an expense (absolute value),
    non-negative is income
  - zero -> row dropped
- ``category``: raw label from the file, ``"Uncategorized"`` when unmapped
- ``metadata``: every cell keyed by its header, so rules can match on columns
  the ledger has no field for

Direction does not consult the account type; credit-card exports that
report purchases as positive numbers come in as income.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from decimal import Decimal

from ...logging_setup import get_logger
from ...models import BalanceEffect, RawTable, Transaction, TransactionType
from ...normalizers import clean_description, parse_amount, parse_date, to_title_case
from ..mapping import NOT_FOUND, BankColumnMapping, cell

_logger = get_logger("finance_tracker.ingest.adapters.bank_statement")

_ZERO = Decimal(0)


def _pick_type(types: Sequence[TransactionType], effect: BalanceEffect) -> TransactionType:
    for t in types:
        if t.balance_effect == effect:
            return t
    if not types:
        raise ValueError("at least one transaction type is required")
    return types[0]


def _direction(row: Sequence[str], mapping: BankColumnMapping) -> tuple[Decimal, bool]:
    """Return ``(amount, is_income)``; amount is zero when the row has none."""

    if mapping.credit != NOT_FOUND and mapping.debit != NOT_FOUND:
        credit = parse_amount(cell(row, mapping.credit))
        debit = parse_amount(cell(row, mapping.debit))
        if credit > 0:
            return credit, True
        if debit > 0:
            return debit, False
        return _ZERO, False
    if mapping.amount != NOT_FOUND:
        value = parse_amount(cell(row, mapping.amount))
        if value < 0:
            return abs(value), False
        return value, True
    return _ZERO, False


def process_bank_rows(
    table: RawTable,
    mapping: BankColumnMapping,
    *,
    transaction_types: Sequence[TransactionType],
    account_id: str | None = None,
    source_filename: str | None = None,
    user_id: str | None = None,
) -> Iterator[Transaction]:
    expense_type = _pick_type(transaction_types, BalanceEffect.EXPENSE)
    income_type = _pick_type(transaction_types, BalanceEffect.INCOME)

    dropped_date = 0
    dropped_zero = 0
    for row in table.rows:
        tx_date = parse_date(cell(row, mapping.date))
        if tx_date is None:
            dropped_date += 1
            continue

        amount, is_income = _direction(row, mapping)
        if amount == 0:
            dropped_zero += 1
            continue

        if mapping.description != NOT_FOUND:
            description = to_title_case(clean_description(cell(row, mapping.description)))
        else:
            description = "Unspecified"

        category = cell(row, mapping.category) if mapping.category != NOT_FOUND else ""

        yield Transaction(
            date=tx_date,
            description=description,
            amount=amount,
            category=category or "Uncategorized",
            type_id=(income_type if is_income else expense_type).id,
            account_id=account_id,
            user_id=user_id,
            source_filename=source_filename,
            metadata={h: v for h, v in zip(table.headers, row, strict=False) if h},
        )

    if dropped_date or dropped_zero:
        _logger.info(
            "bank_statement:rows_dropped bad_date=%d zero_amount=%d source=%s",
            dropped_date,
            dropped_zero,
            source_filename or "-",
        )


__all__ = ["process_bank_rows"]
