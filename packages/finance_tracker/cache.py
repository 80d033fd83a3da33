"""Column-mapping cache keyed by report header signature.

When a user confirms (or corrects) the column mapping for an import, the
mapping is stored against the exact header list of that file so the next
export with the same layout maps without re-detection or prompting.

Cache layout (relative to the cache root, default: ``./.cache``):

  ``<cache_root>/column_mappings/<kind>/<sha256(signature)>.json``

The signature is the raw header list joined by ``|``. It is hashed only to
build a safe file name; the file itself stores the signature and is rejected
on mismatch.

Atomicity: writes target ``.tmp`` first and then ``os.replace`` into place.
Read failures (missing, unreadable, invalid JSON, schema drift) are treated as
a cache miss.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from .ingest.mapping import MAPPING_MODELS, ColumnMapping, MappingKind
from .logging_setup import get_logger

# Bump only when the on-disk JSON shape changes.
SCHEMA_VERSION: int = 1

_logger = get_logger("finance_tracker.cache")


class MappingCacheFile(BaseModel):
    """Top-level schema for a cached mapping JSON file."""

    model_config = ConfigDict(strict=True, extra="forbid")

    schema_version: int
    kind: str
    signature: str
    mapping: dict[str, int]


# ----------------------------------------------------------------------------
# Cache root and keys
# ----------------------------------------------------------------------------


def _get_cache_root() -> Path:
    """Return the cache root directory.

    Default: ``./.cache`` under the current working directory.
    Override: ``FT_CACHE_DIR`` environment variable (absolute or relative).
    """

    root = os.getenv("FT_CACHE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".cache").resolve()


def header_signature(headers: Sequence[str]) -> str:
    return "|".join(headers)


def _mapping_path(kind: MappingKind, signature: str) -> Path:
    if kind not in MAPPING_MODELS:
        raise ValueError(f"unknown mapping kind: {kind!r}")
    d = _get_cache_root() / "column_mappings" / kind
    d.mkdir(parents=True, exist_ok=True)
    digest = hashlib.sha256(signature.encode("utf-8")).hexdigest()
    return d / f"{digest}.json"


# ----------------------------------------------------------------------------
# I/O
# ----------------------------------------------------------------------------


def read_mapping(kind: MappingKind, headers: Sequence[str]) -> ColumnMapping | None:
    """Return the confirmed mapping for this exact header list, or ``None``."""

    signature = header_signature(headers)
    path = _mapping_path(kind, signature)
    if not path.exists():
        return None

    try:
        parsed = MappingCacheFile.model_validate_json(path.read_text(encoding="utf-8"))
        if (
            parsed.schema_version != SCHEMA_VERSION
            or parsed.kind != kind
            or parsed.signature != signature
        ):
            return None
        mapping = MAPPING_MODELS[kind].model_validate(parsed.mapping)
    except (OSError, UnicodeDecodeError, ValidationError):
        _logger.debug(
            "mapping_cache:read_failed; treating as miss kind=%s path=%s",
            kind,
            os.fspath(path),
            exc_info=True,
        )
        return None

    # A stale mapping may point past the end of the header row.
    width = len(headers)
    if any(idx >= width for idx in parsed.mapping.values()):
        return None
    return mapping  # type: ignore[return-value]


def write_mapping(kind: MappingKind, headers: Sequence[str], mapping: ColumnMapping) -> Path:
    signature = header_signature(headers)
    path = _mapping_path(kind, signature)
    tmp = path.with_suffix(path.suffix + ".tmp")

    payload = MappingCacheFile(
        schema_version=SCHEMA_VERSION,
        kind=kind,
        signature=signature,
        mapping=mapping.model_dump(),
    )

    try:
        tmp.write_text(
            json.dumps(payload.model_dump(mode="json"), ensure_ascii=False, separators=(",", ":")),
            encoding="utf-8",
        )
        os.replace(tmp, path)
    except Exception:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()
        raise
    _logger.debug("mapping_cache:write kind=%s columns=%d", kind, len(headers))
    return path


__all__ = [
    "SCHEMA_VERSION",
    "MappingCacheFile",
    "header_signature",
    "read_mapping",
    "write_mapping",
]
