"""
Exception hierarchy for cluster metadata management.

Every failure surfaced by the store, codec, validator or pipeline derives from
``ClusterLedgerError`` and carries its context as attributes (cluster name,
field path, underlying cause) so callers can act on it without parsing the
message text.
"""

from __future__ import annotations

from typing import Any, List, Optional


class ClusterLedgerError(Exception):
    """Base class for all clusterledger failures."""


class InvalidClusterNameError(ClusterLedgerError):
    """Raised when a cluster name contains characters outside the allowed set."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Cluster name '{name}' is invalid; only letters, digits, '-', '_' and '.' are allowed"
        )


class ClusterNotFoundError(ClusterLedgerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Cluster '{name}' not found")


class ClusterExistsError(ClusterLedgerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Cluster '{name}' already exists")


class MetadataCorruptError(ClusterLedgerError):
    """Raised when a stored record cannot be parsed at all."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Metadata of cluster '{name}' is unreadable: {detail}")


class MetadataValidationError(ClusterLedgerError):
    """
    Raised when a stored record parses but fails consistency checks.

    ``metadata`` holds the record as recovered from disk. Callers that only
    need the previous topology (for example to diff against it) may continue
    with it.
    """

    def __init__(self, name: str, problems: List[str], metadata: Any = None) -> None:
        self.name = name
        self.problems = list(problems)
        self.metadata = metadata
        super().__init__(
            f"Metadata of cluster '{name}' failed validation: " + "; ".join(self.problems)
        )


class MetadataWriteError(ClusterLedgerError):
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Failed to write metadata to {path}: {detail}")


class TopologyParseError(ClusterLedgerError):
    """
    Raised when a topology document is malformed.

    ``path`` is the dotted location of the offending field (empty for
    document-level problems) and ``source`` names where the bytes came from.
    """

    def __init__(self, detail: str, path: str = "", source: Optional[str] = None) -> None:
        self.detail = detail
        self.path = path
        self.source = source
        where = f" at '{path}'" if path else ""
        origin = f" in {source}" if source else ""
        super().__init__(f"Failed to parse topology{origin}{where}: {detail}")

    def with_source(self, source: str) -> "TopologyParseError":
        return TopologyParseError(self.detail, path=self.path, source=source)


class TopologyEncodeError(ClusterLedgerError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Failed to encode topology: {detail}")


class ImmutableFieldViolation(ClusterLedgerError):
    """Raised when a candidate topology changes a field that must not change."""

    def __init__(self, field_path: str, old_value: Any, new_value: Any) -> None:
        self.field_path = field_path
        self.old_value = old_value
        self.new_value = new_value
        if new_value is None:
            detail = f"'{field_path}' was removed (was {old_value!r})"
        else:
            detail = f"'{field_path}' changed from {old_value!r} to {new_value!r}"
        super().__init__(f"Immutable field changed: {detail}")


class ChangeCancelled(ClusterLedgerError):
    """Raised when the operator declines (or interrupts) the confirmation prompt."""

    def __init__(self, reason: str = "Operation aborted by user") -> None:
        self.reason = reason
        super().__init__(reason)


class DiffRenderError(ClusterLedgerError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Failed to render topology diff: {detail}")


class CommitError(ClusterLedgerError):
    """Raised when a confirmed change could not be persisted."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(
            f"Failed to save meta of cluster '{name}': {detail}. "
            "The confirmed change was NOT persisted; re-run the command to retry."
        )
