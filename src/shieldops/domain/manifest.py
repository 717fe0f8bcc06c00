"""Trusted manifest — immutable mapping of relative path to hex digest.

The manifest is fetched fresh at the start of every reconciliation pass and
never merged with a previous one.  Two payload shapes are accepted:

* flat: ``{"src/app.py": "<sha256>", ...}``
* versioned: ``{"schema_version": 2, "files": {...}, ...}``; unknown
  top-level keys are ignored so newer manifests stay readable.
"""
from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

import structlog

from shieldops.shared.exceptions import ManifestParseError

logger = structlog.get_logger(__name__)

SCHEMA_VERSION_KEY = "schema_version"
FILES_KEY = "files"


def normalize_relative_path(path: str) -> str:
    """Return *path* with forward-slash separators and no leading ``./``."""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


class Manifest(Mapping[str, str]):
    """Read-only ``relative_path -> digest`` mapping.

    An empty manifest means "nothing trusted": every file classifies as
    unregistered.
    """

    __slots__ = ("_entries", "_schema_version")

    def __init__(
        self,
        entries: Mapping[str, str] | None = None,
        schema_version: int | None = None,
    ) -> None:
        normalized = {
            normalize_relative_path(path): digest.strip().lower()
            for path, digest in (entries or {}).items()
        }
        self._entries: Mapping[str, str] = MappingProxyType(normalized)
        self._schema_version = schema_version

    # -- Mapping protocol ---------------------------------------------------

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Manifest(entries={len(self._entries)}, schema_version={self._schema_version!r})"

    # -- accessors ----------------------------------------------------------

    @property
    def schema_version(self) -> int | None:
        return self._schema_version

    def expected_digest(self, relative_path: str) -> str | None:
        """Trusted digest for *relative_path*, or ``None`` when unregistered."""
        return self._entries.get(normalize_relative_path(relative_path))

    # -- construction -------------------------------------------------------

    @classmethod
    def empty(cls) -> Manifest:
        return cls()

    @classmethod
    def from_json(cls, payload: str | bytes) -> Manifest:
        """Parse a UTF-8 JSON manifest payload.

        Raises:
            ManifestParseError: invalid JSON, invalid UTF-8, or a payload
                that is not a JSON object.
        """
        try:
            text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ManifestParseError(
                f"Manifest is not valid UTF-8 JSON: {exc}",
            ) from exc
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Any) -> Manifest:
        """Build a manifest from an already-decoded JSON value."""
        if not isinstance(data, dict):
            raise ManifestParseError(
                "Manifest payload must be a JSON object",
                context={"payload_type": type(data).__name__},
            )

        schema_version: int | None = None
        files: Any = data
        if isinstance(data.get(FILES_KEY), dict):
            files = data[FILES_KEY]
            raw_version = data.get(SCHEMA_VERSION_KEY)
            if isinstance(raw_version, int):
                schema_version = raw_version

        entries: dict[str, str] = {}
        ignored: list[str] = []
        for path, digest in files.items():
            if path == SCHEMA_VERSION_KEY and files is data:
                continue
            if not isinstance(digest, str) or not digest.strip():
                ignored.append(path)
                continue
            entries[path] = digest

        if ignored:
            logger.warning(
                "manifest_entries_ignored",
                count=len(ignored),
                paths=ignored[:20],
            )
        return cls(entries, schema_version=schema_version)

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)
