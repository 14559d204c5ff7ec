"""
clusterledger
=============

Persisted cluster topology management:
- Strict YAML topology codec with canonical rendering
- Immutable field validation between topology revisions
- Atomic, backed-up metadata storage per cluster
- The edit-config pipeline (validate, diff, confirm, commit)
"""

from clusterledger.codec import TopologyCodec
from clusterledger.confirm import ConfirmationGate, TerminalConfirmationGate
from clusterledger.diff import DiffPresenter
from clusterledger.errors import (
    ChangeCancelled,
    ClusterLedgerError,
    ClusterNotFoundError,
    CommitError,
    ImmutableFieldViolation,
    MetadataValidationError,
    TopologyParseError,
)
from clusterledger.model import ClusterMetadata, GlobalSpec, NodeSpec, RoleGroup, Topology
from clusterledger.pipeline import ChangeResult, PipelineState, ReconciliationPipeline, change_config
from clusterledger.store import MetadataStore
from clusterledger.validator import ImmutableFieldValidator, check_diff

__version__ = "0.1.0"

__all__ = [
    "ChangeCancelled",
    "ChangeResult",
    "ClusterLedgerError",
    "ClusterMetadata",
    "ClusterNotFoundError",
    "CommitError",
    "ConfirmationGate",
    "DiffPresenter",
    "GlobalSpec",
    "ImmutableFieldValidator",
    "ImmutableFieldViolation",
    "MetadataStore",
    "MetadataValidationError",
    "NodeSpec",
    "PipelineState",
    "ReconciliationPipeline",
    "RoleGroup",
    "TerminalConfirmationGate",
    "Topology",
    "TopologyCodec",
    "TopologyParseError",
    "change_config",
    "check_diff",
]
