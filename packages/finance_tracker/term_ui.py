"""Tiny terminal UI helpers (prompt_toolkit-based).

Small, focused prompts used by the interactive review flows. They are kept
apart from the review logic so they are easy to test in isolation with a
prompt_toolkit pipe input.
"""

from __future__ import annotations

from collections.abc import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator

from .ingest.mapping import NOT_FOUND

# ----------------------------------------------------------------------------
# Duplicate decision prompt
# ----------------------------------------------------------------------------

IMPORT = "import"
SKIP = "skip"
IMPORT_ALL = "import all"
SKIP_ALL = "skip all"

DUPLICATE_CHOICES: tuple[str, ...] = (SKIP, IMPORT, SKIP_ALL, IMPORT_ALL)

# Single-letter shortcuts typed at the prompt.
_SHORTCUTS = {"s": SKIP, "i": IMPORT, "sa": SKIP_ALL, "ia": IMPORT_ALL}


def _session_with(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def select_duplicate_action(
    *,
    default: str = SKIP,
    session: PromptSession | None = None,
    message: str = "Duplicate? [skip/import/skip all/import all] (Enter to accept): ",
) -> str | None:
    """Ask what to do with one suspected duplicate.

    Returns one of ``DUPLICATE_CHOICES``. ``s``/``i``/``sa``/``ia`` are accepted
    as shortcuts. Esc returns ``None`` (the caller treats it as "skip the rest").
    """

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    canonical = {c: c for c in DUPLICATE_CHOICES} | _SHORTCUTS
    completer = WordCompleter(list(DUPLICATE_CHOICES), ignore_case=True, sentence=True)

    class _ChoiceValidator(Validator):
        def validate(self, document) -> None:
            if " ".join(document.text.lower().split()) not in canonical:
                raise ValidationError(message="Type skip, import, skip all or import all.")

    sess = _session_with(session, kb)
    value = sess.prompt(
        message,
        default=default,
        completer=completer,
        validator=_ChoiceValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    if value is None:
        return None
    return canonical[" ".join(value.lower().split())]


# ----------------------------------------------------------------------------
# Column mapping prompt
# ----------------------------------------------------------------------------

UNMAPPED = "-"


def prompt_column_choice(
    field_name: str,
    headers: Sequence[str],
    *,
    current: int = NOT_FOUND,
    session: PromptSession | None = None,
) -> int | None:
    """Ask which header feeds ``field_name``.

    The answer may be a header name (case-insensitive, with completion), its
    1-based position, or ``-`` for "not mapped". Enter keeps the current
    choice. Returns the 0-based index, ``NOT_FOUND`` for unmapped, or ``None``
    when cancelled with Esc.
    """

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    by_name = {h.strip().lower(): i for i, h in enumerate(headers) if h.strip()}

    def _resolve(text: str) -> int | None:
        t = text.strip()
        if t == UNMAPPED:
            return NOT_FOUND
        if t.isdigit():
            n = int(t)
            return n - 1 if 1 <= n <= len(headers) else None
        return by_name.get(t.lower())

    class _ColumnValidator(Validator):
        def validate(self, document) -> None:
            if _resolve(document.text) is None:
                raise ValidationError(
                    message="Pick a header name, its number, or '-' to leave unmapped."
                )

    completer = WordCompleter(
        [h for h in headers if h.strip()], ignore_case=True, match_middle=True, sentence=True
    )
    if 0 <= current < len(headers):
        initial = headers[current].strip() or str(current + 1)
    else:
        initial = UNMAPPED
    sess = _session_with(session, kb)
    value = sess.prompt(
        f"{field_name} column: ",
        default=initial,
        completer=completer,
        validator=_ColumnValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    if value is None:
        return None
    return _resolve(value)


__all__ = [
    "IMPORT",
    "SKIP",
    "IMPORT_ALL",
    "SKIP_ALL",
    "DUPLICATE_CHOICES",
    "select_duplicate_action",
    "UNMAPPED",
    "prompt_column_choice",
]
