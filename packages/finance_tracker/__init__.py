"""Public interface for the ``finance_tracker`` package.

This module exposes the import pipelines, the pure rule/duplicate/link
operations and the public models as the stable import surface. There is no
runtime logic here, only symbol re-exports.
"""

from .api import (
    ImportResult,
    confirm_mapping,
    detect_mapping,
    import_amazon_report,
    import_bank_statement,
    import_youtube_report,
)
from .duplicates import DuplicateDecision, find_duplicates, resolve_duplicates
from .export import ClipboardError, build_clipboard_tsv, copy_to_clipboard
from .ingest.mapping import MappingError
from .ingest.utils import UnsupportedFormatError
from .linking import (
    SplitPart,
    TransferGroup,
    find_transfer_groups,
    link_transactions,
    sides_balance,
    split_transaction,
    unlink_group,
)
from .models import (
    Account,
    AmazonMetric,
    BalanceEffect,
    BasicCondition,
    Category,
    ConditionGroup,
    DuplicatePair,
    RawTable,
    ReconciliationRule,
    Transaction,
    TransactionType,
    YouTubeMetric,
)
from .rules import apply_rules_to_transactions, evaluate_conditions, find_matching_transactions
from .state import AppState, DebouncedSaver, FinanceStore

__all__ = [
    # API
    "ImportResult",
    "detect_mapping",
    "confirm_mapping",
    "import_bank_statement",
    "import_amazon_report",
    "import_youtube_report",
    # Operations
    "apply_rules_to_transactions",
    "evaluate_conditions",
    "find_matching_transactions",
    "find_duplicates",
    "resolve_duplicates",
    "DuplicateDecision",
    "find_transfer_groups",
    "sides_balance",
    "link_transactions",
    "unlink_group",
    "split_transaction",
    "SplitPart",
    "TransferGroup",
    "build_clipboard_tsv",
    "copy_to_clipboard",
    # State
    "AppState",
    "FinanceStore",
    "DebouncedSaver",
    # Errors
    "MappingError",
    "UnsupportedFormatError",
    "ClipboardError",
    # Models
    "Account",
    "AmazonMetric",
    "BalanceEffect",
    "BasicCondition",
    "Category",
    "ConditionGroup",
    "DuplicatePair",
    "RawTable",
    "ReconciliationRule",
    "Transaction",
    "TransactionType",
    "YouTubeMetric",
]
