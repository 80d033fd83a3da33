"""Ingest utilities shared by CLI commands and the import API.

Currently exposes the file-loading front door: read an export from disk as
text, rejecting formats the local parsers cannot handle (PDF statements need
an external extraction step and are refused here).
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path

_PDF_MAGIC = b"%PDF"


class UnsupportedFormatError(ValueError):
    """The input is a format the local tabular parsers do not read."""


def is_pdf(path: Path) -> bool:
    if path.suffix.lower() == ".pdf":
        return True
    with path.open("rb") as f:
        return f.read(len(_PDF_MAGIC)) == _PDF_MAGIC


def read_import_text(path: str | PathLike[str]) -> str:
    """Return the file's text with a BOM stripped and newlines normalized.

    Raises ``UnsupportedFormatError`` for PDF input; ``OSError`` subclasses
    (missing file, permissions) propagate to the caller.
    """

    p = Path(path)
    if is_pdf(p):
        raise UnsupportedFormatError(
            f"PDF statements are not supported by the local parser: {p.name}"
        )
    text = p.read_text(encoding="utf-8-sig")
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = ["UnsupportedFormatError", "is_pdf", "read_import_text"]
