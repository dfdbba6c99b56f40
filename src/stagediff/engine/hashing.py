"""Deterministic hashing utilities for stagediff.

Provides canonical JSON serialization and SHA-256 hashing for commits and
changesets. All hashing is deterministic: same input always produces
same output, regardless of dict key ordering.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Mapping


def canonical_json(data: Any) -> bytes:
    """Serialize data to canonical JSON bytes.

    Uses sorted keys, compact separators, and UTF-8 encoding
    to ensure deterministic output.

    Args:
        data: Any JSON-serializable Python object (dict, list, str, int, etc.).

    Returns:
        UTF-8 encoded bytes of the canonical JSON string.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def changeset_signature(changes: Mapping[str, str | None]) -> str:
    """Compute the content signature of a file-level changeset.

    The signature depends only on which paths change and what they change
    to, never on the commit's position in the graph, so a cherry-pick or
    rebase that lands the same content keeps the same signature.

    Args:
        changes: Map of path -> resulting blob id (None for a deletion).

    Returns:
        Hex digest of SHA-256 hash.
    """
    return hashlib.sha256(canonical_json(dict(changes))).hexdigest()


def commit_hash(
    parents: list[str],
    message: str,
    authored_at_iso: str,
    changes: Mapping[str, str | None],
) -> str:
    """Compute SHA-256 hash of structured commit data.

    Args:
        parents: Ordered parent commit ids (first parent first).
        message: Commit message.
        authored_at_iso: ISO 8601 authoring timestamp.
        changes: Changeset relative to the first parent.

    Returns:
        Hex digest of SHA-256 hash.
    """
    data: dict[str, Any] = {
        "parents": list(parents),
        "message": message,
        "authored_at": authored_at_iso,
        "changes": dict(changes),
    }
    return hashlib.sha256(canonical_json(data)).hexdigest()


# Lines of a unified diff that depend on graph position rather than content.
_POSITIONAL_LINE = re.compile(r"^(@@ .*|index [0-9a-f]+\.\.[0-9a-f]+.*)$")


def patch_signature(patches: Mapping[str, str]) -> str:
    """Compute a patch-id style signature from per-path unified diff text.

    Hunk headers and ``index`` lines are dropped so the same change applied
    at a different line offset or on a different base blob hashes equally.
    Whitespace-only lines are ignored.

    Args:
        patches: Map of path -> unified diff text for that path.

    Returns:
        Hex digest of SHA-256 hash.
    """
    normalized: dict[str, list[str]] = {}
    for path, text in patches.items():
        kept = []
        for line in text.splitlines():
            stripped = line.rstrip()
            if not stripped or _POSITIONAL_LINE.match(stripped):
                continue
            kept.append(stripped)
        normalized[path] = kept
    return hashlib.sha256(canonical_json(normalized)).hexdigest()
