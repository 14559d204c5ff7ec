"""
File-backed cluster metadata store.

Layout under the store home::

    clusters/<name>/meta.yaml
    clusters/<name>/backup/meta-<UTC timestamp>.yaml

``meta.yaml`` holds the bookkeeping fields and the topology. Writes go to a
temporary file in the same directory which is fsynced and then moved over
``meta.yaml`` with ``os.replace``, so readers see either the previous record
or the new one, never a partial file.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from clusterledger.codec import StrictLoader, TopologyCodec
from clusterledger.errors import (
    ClusterExistsError,
    ClusterNotFoundError,
    InvalidClusterNameError,
    MetadataCorruptError,
    MetadataValidationError,
    MetadataWriteError,
    TopologyParseError,
)
from clusterledger.model import ClusterMetadata, Topology, is_valid_cluster_name

logger = logging.getLogger(__name__)

META_FILE = "meta.yaml"
BACKUP_DIR = "backup"
RECORD_FIELDS = ("name", "version", "revision", "checksum", "updated_at", "topology")


def topology_checksum(canonical_text: str) -> str:
    return hashlib.sha256(canonical_text.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_cluster_name(name: str) -> None:
    if not is_valid_cluster_name(name):
        raise InvalidClusterNameError(name)


class MetadataStore:
    """Loads and persists ClusterMetadata records, one directory per cluster."""

    def __init__(
        self,
        home: Path,
        codec: Optional[TopologyCodec] = None,
        max_backups: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.home = Path(home)
        self.codec = codec or TopologyCodec()
        self.max_backups = max_backups
        self._clock = clock

    @property
    def clusters_dir(self) -> Path:
        return self.home / "clusters"

    def cluster_dir(self, name: str) -> Path:
        validate_cluster_name(name)
        return self.clusters_dir / name

    def meta_path(self, name: str) -> Path:
        return self.cluster_dir(name) / META_FILE

    def exists(self, name: str) -> bool:
        return self.meta_path(name).is_file()

    def list_clusters(self) -> List[str]:
        if not self.clusters_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.clusters_dir.iterdir()
            if (entry / META_FILE).is_file() and is_valid_cluster_name(entry.name)
        )

    def backups(self, name: str) -> List[Path]:
        """Backup files of ``name``, oldest first."""
        backup_dir = self.cluster_dir(name) / BACKUP_DIR
        if not backup_dir.is_dir():
            return []
        return sorted(backup_dir.glob("meta-*.yaml"))

    # ------------------------------------------------------------------ load

    def load(self, name: str) -> ClusterMetadata:
        """
        Load the record of cluster ``name``.

        Raises:
            ClusterNotFoundError: no record exists.
            MetadataCorruptError: the record cannot be parsed.
            MetadataValidationError: the record parsed but is inconsistent;
                the recovered metadata is attached as ``exc.metadata``.
        """
        path = self.meta_path(name)
        if not path.is_file():
            raise ClusterNotFoundError(name)

        try:
            document = yaml.load(path.read_bytes().decode("utf-8"), Loader=StrictLoader)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            raise MetadataCorruptError(name, str(exc)) from exc
        if not isinstance(document, dict):
            raise MetadataCorruptError(name, "record is not a mapping")
        if "topology" not in document:
            raise MetadataCorruptError(name, "record has no topology")

        # Unknown topology fields are dropped and reported as problems.
        unknown_fields: List[str] = []
        try:
            topology = self.codec.from_document(
                document["topology"], path="topology", unknown=unknown_fields
            )
        except TopologyParseError as exc:
            raise MetadataCorruptError(name, str(exc)) from exc

        problems: List[str] = [f"unknown field {field_path}" for field_path in unknown_fields]
        unknown = sorted(set(map(str, document)) - set(RECORD_FIELDS))
        if unknown:
            problems.append(f"unknown record fields: {unknown}")

        revision = document.get("revision", 0)
        if isinstance(revision, bool) or not isinstance(revision, int):
            problems.append(f"revision must be an integer, got {revision!r}")
            revision = 0

        stored_name = document.get("name", name)
        if stored_name != name:
            problems.append(f"record names cluster '{stored_name}'")

        metadata = ClusterMetadata(
            name=name,
            topology=topology,
            version=str(document.get("version") or ""),
            revision=revision,
            checksum=str(document.get("checksum") or ""),
            updated_at=str(document.get("updated_at") or ""),
        )

        if metadata.checksum and metadata.checksum != topology_checksum(self.codec.encode(topology)):
            problems.append("topology checksum mismatch (record was edited outside clusterledger)")
        problems.extend(topology.validate())

        if problems:
            raise MetadataValidationError(name, problems, metadata)
        logger.debug("Loaded cluster %s at revision %d", name, metadata.revision)
        return metadata

    # ------------------------------------------------------------------ save

    def create(self, name: str, topology: Topology, version: str = "") -> ClusterMetadata:
        """Write the first record of a new cluster."""
        if self.exists(name):
            raise ClusterExistsError(name)
        metadata = ClusterMetadata(name=name, topology=topology, version=version)
        self.save(name, metadata)
        return metadata

    def save(self, name: str, metadata: ClusterMetadata) -> None:
        """
        Persist ``metadata`` as the current record of ``name``.

        The revision is incremented and the checksum recomputed; both are
        written back to ``metadata`` only once the record is durable.

        Raises:
            TopologyEncodeError: the topology cannot be rendered.
            MetadataWriteError: the record could not be written.
        """
        canonical = self.codec.encode(metadata.topology)
        revision = metadata.revision + 1
        checksum = topology_checksum(canonical)
        updated_at = self._clock().isoformat()

        record: Dict[str, Any] = {
            "name": name,
            "version": metadata.version,
            "revision": revision,
            "checksum": checksum,
            "updated_at": updated_at,
            "topology": self.codec.to_document(metadata.topology),
        }
        text = self.codec.dump(record)

        path = self.meta_path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._backup(name, path)
            _atomic_write(path, text)
        except OSError as exc:
            raise MetadataWriteError(str(path), exc.strerror or str(exc)) from exc

        metadata.revision = revision
        metadata.checksum = checksum
        metadata.updated_at = updated_at
        logger.debug("Saved cluster %s at revision %d", name, revision)

    def _backup(self, name: str, path: Path) -> None:
        if not path.is_file() or self.max_backups == 0:
            return
        backup_dir = path.parent / BACKUP_DIR
        backup_dir.mkdir(exist_ok=True)
        stamp = self._clock().strftime("%Y%m%dT%H%M%S%fZ")
        shutil.copy2(path, backup_dir / f"meta-{stamp}.yaml")

        existing = self.backups(name)
        for stale in existing[: max(0, len(existing) - self.max_backups)]:
            logger.debug("Pruning metadata backup %s", stale)
            stale.unlink()


def _atomic_write(path: Path, text: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
