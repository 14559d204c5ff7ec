"""
Topology change pipeline.

``ReconciliationPipeline.change_config`` replaces the persisted topology of a
cluster with an operator-supplied file:

    LOADED -> PARSED -> VALIDATED -> COMPARED -> NO_CHANGE
                                              -> AWAITING_CONFIRMATION -> COMMITTED

Any failure moves the pipeline to ABORTED. Nothing is written unless a change
was detected and confirmed, and the record is written at most once.

The candidate file's raw bytes are compared against a fresh canonical
rendering of the stored topology. A candidate that differs only in formatting
(comments, key order, quoting) is therefore reported as a change and goes
through the diff and confirmation steps; this is intentional and the diff
shows the operator exactly what would be stored.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, TextIO, Union

from clusterledger.codec import TopologyCodec
from clusterledger.confirm import ConfirmationGate, TerminalConfirmationGate
from clusterledger.diff import HI_YELLOW, RED, DiffPresenter, paint, use_color
from clusterledger.errors import (
    ClusterLedgerError,
    CommitError,
    ImmutableFieldViolation,
    MetadataValidationError,
    TopologyParseError,
)
from clusterledger.model import ClusterMetadata
from clusterledger.store import MetadataStore, validate_cluster_name
from clusterledger.validator import ImmutableFieldValidator

logger = logging.getLogger(__name__)

REJECTED_PREFIX = "New topology could not be saved: "
CONFIRM_PROMPT = "Please check change highlight above, do you want to apply the change? [y/N]:"


class PipelineState(Enum):
    PENDING = "pending"
    LOADED = "loaded"
    PARSED = "parsed"
    VALIDATED = "validated"
    COMPARED = "compared"
    NO_CHANGE = "no_change"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass
class ChangeResult:
    name: str
    changed: bool
    revision: Optional[int] = None


class ReconciliationPipeline:
    """
    Validate, diff, confirm and commit a replacement topology.

    Collaborators are injected so the pipeline can run without a terminal:
    ``gate`` answers the confirmation prompt, ``presenter`` receives the diff,
    ``out``/``err`` receive operator-facing messages. ``color`` (``auto``,
    ``always`` or ``never``) applies to the diff, the rejection prefix and
    the confirmation prompt.
    """

    def __init__(
        self,
        store: MetadataStore,
        codec: Optional[TopologyCodec] = None,
        validator: Optional[ImmutableFieldValidator] = None,
        presenter: Optional[DiffPresenter] = None,
        gate: Optional[ConfirmationGate] = None,
        prog: str = "clusterctl",
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        color: str = "auto",
    ) -> None:
        self.store = store
        self.codec = codec or store.codec
        self.validator = validator or ImmutableFieldValidator()
        self.presenter = presenter or DiffPresenter(sink=out, color=color)
        self.gate = gate or TerminalConfirmationGate()
        self.prog = prog
        self.color = color
        self._out = out
        self._err = err
        self.state = PipelineState.PENDING

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err if self._err is not None else sys.stderr

    def change_config(
        self,
        name: str,
        config_path: Union[str, Path],
        skip_confirm: bool = False,
    ) -> ChangeResult:
        """
        Replace the topology of cluster ``name`` with the file at ``config_path``.

        Returns a ChangeResult; ``changed`` is False when the file matches the
        stored topology byte for byte and nothing was written.

        Raises:
            InvalidClusterNameError, ClusterNotFoundError, MetadataCorruptError:
                the current record could not be obtained.
            TopologyParseError: the candidate file is unreadable or malformed.
            ImmutableFieldViolation: the candidate changes an immutable field.
            ChangeCancelled: the operator declined the change.
            DiffRenderError: the diff could not be shown.
            CommitError: the confirmed change could not be persisted.
        """
        self.state = PipelineState.PENDING
        try:
            return self._run(name, Path(config_path), skip_confirm)
        except Exception:
            self.state = PipelineState.ABORTED
            raise

    def _run(self, name: str, config_path: Path, skip_confirm: bool) -> ChangeResult:
        validate_cluster_name(name)
        metadata = self._load(name)
        self.state = PipelineState.LOADED
        original = metadata.topology

        try:
            new_data = config_path.read_bytes()
        except OSError as exc:
            error = TopologyParseError(
                f"cannot read file ({exc.strerror or exc})", source=str(config_path)
            )
            self._reject(error)
            raise error from exc
        try:
            candidate = self.codec.decode(new_data, source=str(config_path))
        except TopologyParseError as exc:
            self._reject(exc)
            raise
        self.state = PipelineState.PARSED

        try:
            self.validator.check_diff(original, candidate)
        except ImmutableFieldViolation as exc:
            self._reject(exc)
            raise
        self.state = PipelineState.VALIDATED

        original_text = self.codec.encode(original)
        self.state = PipelineState.COMPARED
        if original_text.encode("utf-8") == new_data:
            self.state = PipelineState.NO_CHANGE
            logger.info("Topology of cluster %s unchanged, nothing written", name)
            print("The file has nothing changed", file=self.out)
            return ChangeResult(name=name, changed=False, revision=metadata.revision)

        self.state = PipelineState.AWAITING_CONFIRMATION
        self.presenter.render(original_text, new_data.decode("utf-8"))
        if skip_confirm:
            logger.info("Confirmation skipped for cluster %s", name)
        else:
            prompt = CONFIRM_PROMPT
            if use_color(self.color, self.out):
                prompt = paint(prompt, HI_YELLOW)
            self.gate.confirm(prompt)

        logger.info("Applying changes to cluster %s", name)
        print("Applying changes...", file=self.out)
        metadata.topology = candidate
        try:
            self.store.save(name, metadata)
        except ClusterLedgerError as exc:
            raise CommitError(name, str(exc)) from exc
        self.state = PipelineState.COMMITTED

        print(
            f"Applied successfully, please use `{self.prog} reload {name} [-N <nodes>] [-R <roles>]` "
            "to reload config.",
            file=self.out,
        )
        return ChangeResult(name=name, changed=True, revision=metadata.revision)

    def _load(self, name: str) -> ClusterMetadata:
        try:
            return self.store.load(name)
        except MetadataValidationError as exc:
            # Only the previous topology is needed here; a partially invalid
            # record is still good enough to diff against.
            logger.warning("Continuing with partially invalid metadata: %s", exc)
            return exc.metadata

    def _reject(self, exc: ClusterLedgerError) -> None:
        logger.debug("Rejected candidate topology: %s", exc)
        prefix = REJECTED_PREFIX
        if use_color(self.color, self.err):
            prefix = paint(prefix, RED)
        print(f"{prefix}{exc}", file=self.err)
        print("Nothing changed.", file=self.err)


def change_config(
    store: MetadataStore,
    name: str,
    config_path: Union[str, Path],
    skip_confirm: bool = False,
    **kwargs,
) -> ChangeResult:
    """Convenience wrapper building a ReconciliationPipeline for one call."""
    return ReconciliationPipeline(store, **kwargs).change_config(name, config_path, skip_confirm)
