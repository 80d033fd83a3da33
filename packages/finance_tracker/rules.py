"""Rule evaluation: condition chains over transactions and the actions they set.

A rule's ``conditions`` are evaluated as a left fold. The running result is
combined with each following term using the ``next_logic`` stored on the
*preceding* condition, so ``[A (AND), B (OR), C]`` means ``(A and B) or C``.
A ``ConditionGroup`` evaluates its own list with the same fold and counts as
a single term in the outer chain. An empty chain matches everything.

Per-condition tests
-------------------
- Text fields (``description``, ``metadata``, ``payeeId``/``counterpartyId``,
  ``merchantId``, ``locationId``): ``contains``, ``does_not_contain``,
  ``starts_with``, ``ends_with``, ``equals`` and ``regex_match``. Both sides
  are compared after whitespace collapsing and case folding. A value holding
  ``a || b`` is an inline OR list; for ``does_not_contain`` none of the tokens
  may occur. ``metadata`` additionally supports ``exists``. ``description``
  tests the transaction's original (pre-rewrite) description when present.
- ``amount``: ``equals`` (within one cent), ``greater_than``, ``less_than``.
- ``accountId``: ``equals`` compares ids exactly; the other text operators
  run against the account's display name.

Empty expected values, unknown fields, unknown operators and invalid regular
expressions never match.

Everything here is pure: inputs are never mutated, updated copies are
returned.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, InvalidOperation

from .logging_setup import get_logger
from .models import Account, BasicCondition, ConditionGroup, ReconciliationRule, Transaction
from .normalizers import normalize_text

_logger = get_logger("finance_tracker.rules")

TEXT_OPERATORS: frozenset[str] = frozenset(
    {"contains", "does_not_contain", "starts_with", "ends_with", "equals", "regex_match"}
)
AMOUNT_OPERATORS: frozenset[str] = frozenset({"equals", "greater_than", "less_than"})

# condition field -> Transaction attribute for plain id/text fields
_TEXT_FIELDS: dict[str, str] = {
    "payeeId": "payee_id",
    "counterpartyId": "payee_id",
    "merchantId": "merchant_id",
    "locationId": "location_id",
}

_OR_SPLIT_RE = re.compile(r"\s*\|\|\s*")
_AMOUNT_TOLERANCE = Decimal("0.01")

type AccountIndex = Mapping[str, Account]


def index_accounts(accounts: Iterable[Account] | AccountIndex | None) -> AccountIndex:
    if accounts is None:
        return {}
    if isinstance(accounts, Mapping):
        return accounts
    return {a.id: a for a in accounts}


# ----------------------------------------------------------------------------
# Single conditions
# ----------------------------------------------------------------------------


def _check_text(actual: str, expected: str, operator: str) -> bool:
    norm_actual = normalize_text(actual)
    norm_expected = normalize_text(expected)
    if not norm_expected:
        return False
    match operator:
        case "contains":
            return norm_expected in norm_actual
        case "does_not_contain":
            return norm_expected not in norm_actual
        case "equals":
            return norm_actual == norm_expected
        case "starts_with":
            return norm_actual.startswith(norm_expected)
        case "ends_with":
            return norm_actual.endswith(norm_expected)
        case "regex_match":
            try:
                return re.search(expected.strip(), actual, re.IGNORECASE) is not None
            except re.error:
                return False
        case _:
            return False


def _check_tokens(actual: str, value: str, operator: str) -> bool:
    tokens = [t for t in _OR_SPLIT_RE.split(value) if t]
    if len(tokens) <= 1:
        return _check_text(actual, value, operator)
    if operator == "does_not_contain":
        return all(_check_text(actual, t, operator) for t in tokens)
    return any(_check_text(actual, t, operator) for t in tokens)


def _check_amount(amount: Decimal, value: str, operator: str) -> bool:
    try:
        expected = Decimal(value.strip())
    except InvalidOperation:
        return False
    if not expected.is_finite():
        return False
    match operator:
        case "equals":
            return abs(amount - expected) < _AMOUNT_TOLERANCE
        case "greater_than":
            return amount > expected
        case "less_than":
            return amount < expected
        case _:
            return False


def evaluate_condition(
    tx: Transaction,
    condition: BasicCondition,
    accounts: Iterable[Account] | AccountIndex | None = None,
) -> bool:
    """Truth value of one basic condition for ``tx``."""

    field = condition.field
    op = condition.operator

    if field == "description":
        actual = tx.original_description or tx.description or ""
        return _check_tokens(actual, condition.value, op)

    if field == "metadata":
        raw = tx.metadata.get(condition.metadata_key or "")
        if op == "exists":
            return raw is not None and raw.strip() != ""
        return _check_tokens(raw or "", condition.value, op)

    if field == "amount":
        return _check_amount(tx.amount, condition.value, op)

    if field == "accountId":
        if op == "equals":
            return (tx.account_id or "") == condition.value
        account = index_accounts(accounts).get(tx.account_id or "")
        return _check_text(account.name if account else "", condition.value, op)

    attr = _TEXT_FIELDS.get(field)
    if attr is not None:
        return _check_tokens(getattr(tx, attr) or "", condition.value, op)

    return False


def _evaluate_term(
    tx: Transaction, condition: BasicCondition | ConditionGroup, accounts: AccountIndex
) -> bool:
    if isinstance(condition, ConditionGroup):
        return evaluate_conditions(tx, condition.conditions, accounts)
    return evaluate_condition(tx, condition, accounts)


def evaluate_conditions(
    tx: Transaction,
    conditions: Sequence[BasicCondition | ConditionGroup],
    accounts: Iterable[Account] | AccountIndex | None = None,
) -> bool:
    """Left-fold ``conditions`` using each predecessor's ``next_logic``."""

    if not conditions:
        return True
    index = index_accounts(accounts)
    result = _evaluate_term(tx, conditions[0], index)
    for prev, nxt in zip(conditions, conditions[1:], strict=False):
        term = _evaluate_term(tx, nxt, index)
        if prev.next_logic == "OR":
            result = result or term
        else:
            result = result and term
    return result


def matches_rule(
    tx: Transaction,
    rule: ReconciliationRule,
    accounts: Iterable[Account] | AccountIndex | None = None,
) -> bool:
    return evaluate_conditions(tx, rule.conditions, accounts)


# ----------------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------------


def _apply_actions(tx: Transaction, rule: ReconciliationRule) -> bool:
    """Apply ``rule``'s set-actions to ``tx`` in place; return whether a field changed.

    ``skip_import`` is applied but does not count as a change.
    """

    changed = False
    if rule.skip_import:
        tx.is_ignored = True

    overwrites = (
        ("category_id", rule.set_category_id),
        ("payee_id", rule.set_payee_id),
        ("location_id", rule.set_location_id),
        ("user_id", rule.set_user_id),
        ("type_id", rule.set_transaction_type_id),
        ("description", rule.set_description),
    )
    for attr, value in overwrites:
        if value and getattr(tx, attr) != value:
            setattr(tx, attr, value)
            changed = True

    if rule.assign_tag_ids:
        merged = list(dict.fromkeys([*tx.tag_ids, *(t for t in rule.assign_tag_ids if t)]))
        if len(merged) > len(tx.tag_ids):
            tx.tag_ids = merged
            changed = True
    return changed


def _working_copy(tx: Transaction) -> Transaction:
    updated = tx.model_copy(deep=True)
    if not updated.original_description:
        updated.original_description = updated.description
    return updated


def apply_rules_to_transactions(
    transactions: Iterable[Transaction],
    rules: Sequence[ReconciliationRule],
    accounts: Iterable[Account] | AccountIndex | None = None,
) -> list[Transaction]:
    """Apply every matching rule, in order, to each transaction.

    Later rules see (and may overwrite) the fields set by earlier ones.
    Matching rule ids are recorded in ``applied_rule_ids``; ``skip_import``
    rules mark the row ``is_ignored``.
    """

    txs = list(transactions)
    if not rules:
        return txs

    index = index_accounts(accounts)
    out: list[Transaction] = []
    matched_rows = 0
    for tx in txs:
        updated = _working_copy(tx)
        matched: list[str] = []
        for rule in rules:
            if matches_rule(updated, rule, index):
                matched.append(rule.id)
                _apply_actions(updated, rule)
        if matched:
            updated.applied_rule_ids = matched
            matched_rows += 1
        out.append(updated)

    _logger.debug(
        "rules:applied rules=%d transactions=%d matched=%d", len(rules), len(txs), matched_rows
    )
    return out


def find_matching_transactions(
    transactions: Iterable[Transaction],
    rule: ReconciliationRule,
    accounts: Iterable[Account] | AccountIndex | None = None,
) -> list[tuple[Transaction, Transaction]]:
    """Preview one rule over stored transactions.

    Returns ``(original, updated)`` pairs only for matching transactions the
    rule would actually change.
    """

    index = index_accounts(accounts)
    pairs: list[tuple[Transaction, Transaction]] = []
    for tx in transactions:
        if not matches_rule(tx, rule, index):
            continue
        updated = _working_copy(tx)
        if _apply_actions(updated, rule):
            pairs.append((tx, updated))
    return pairs


__all__ = [
    "TEXT_OPERATORS",
    "AMOUNT_OPERATORS",
    "index_accounts",
    "evaluate_condition",
    "evaluate_conditions",
    "matches_rule",
    "apply_rules_to_transactions",
    "find_matching_transactions",
]
