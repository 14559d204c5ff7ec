"""
Cluster topology data model.

Topology is a tree: cluster -> role groups -> node specs -> config overrides,
plus a ``global`` section. Field tags live in dataclass field metadata:

* ``immutable``: value may not change once the cluster is registered.
* ``identity``: field that identifies a list element (nodes are matched by it).
* ``key``: YAML key when it differs from the attribute name.
* ``omitempty``: dropped from the canonical rendering when empty.

The codec and the immutable-field validator read these tags generically, so
tagging a new field here is all it takes to change the policy.
"""

from __future__ import annotations

import re
from dataclasses import Field, dataclass, field, fields
from typing import Any, Dict, Iterator, List, Optional, Tuple

IMMUTABLE = "immutable"
IDENTITY = "identity"
KEY = "key"
OMITEMPTY = "omitempty"

CLUSTER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-_\.]+$")


def tag(*, immutable: bool = False, identity: bool = False, key: Optional[str] = None,
        omitempty: bool = False) -> Dict[str, Any]:
    """Build field metadata. Identity fields are always immutable."""
    meta: Dict[str, Any] = {}
    if immutable or identity:
        meta[IMMUTABLE] = True
    if identity:
        meta[IDENTITY] = True
    if key:
        meta[KEY] = key
    if omitempty:
        meta[OMITEMPTY] = True
    return meta


def field_key(f: Field) -> str:
    return f.metadata.get(KEY, f.name)


def is_immutable(f: Field) -> bool:
    return bool(f.metadata.get(IMMUTABLE))


def identity_field(cls: type) -> Optional[Field]:
    for f in fields(cls):
        if f.metadata.get(IDENTITY):
            return f
    return None


def is_valid_cluster_name(name: str) -> bool:
    return bool(name) and CLUSTER_NAME_PATTERN.match(name) is not None


@dataclass
class NodeSpec:
    """A single deployed instance."""

    name: str = field(metadata=tag(identity=True))
    role: str = field(metadata=tag(immutable=True))
    host: str = field(metadata=tag(immutable=True))
    port: int = field(metadata=tag(immutable=True))
    deploy_dir: Optional[str] = field(default=None, metadata=tag(immutable=True))
    data_dir: Optional[str] = field(default=None, metadata=tag(immutable=True))
    labels: Dict[str, str] = field(default_factory=dict, metadata=tag(omitempty=True))
    config: Dict[str, Any] = field(default_factory=dict, metadata=tag(omitempty=True))

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class RoleGroup:
    nodes: List[NodeSpec] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict, metadata=tag(omitempty=True))


@dataclass
class GlobalSpec:
    """Cluster-wide deployment settings."""

    user: str = field(default="deploy", metadata=tag(immutable=True))
    ssh_port: int = 22
    deploy_dir: str = field(default="deploy", metadata=tag(immutable=True))
    data_dir: str = field(default="data", metadata=tag(immutable=True))
    arch: str = field(default="amd64", metadata=tag(immutable=True))
    config: Dict[str, Any] = field(default_factory=dict, metadata=tag(omitempty=True))


@dataclass
class Topology:
    global_: GlobalSpec = field(default_factory=GlobalSpec, metadata=tag(key="global"))
    roles: Dict[str, RoleGroup] = field(default_factory=dict)

    def iter_nodes(self) -> Iterator[Tuple[str, NodeSpec]]:
        """Yield ``(group_name, node)`` pairs in declaration order."""
        for group_name, group in self.roles.items():
            for node in group.nodes:
                yield group_name, node

    def validate(self) -> List[str]:
        """
        Return a list of consistency problems (empty when the topology is sound).

        Checks that node names and ``host:port`` pairs are unique across the
        cluster, ports are in range and no role group is empty.
        """
        problems: List[str] = []
        names: Dict[str, str] = {}
        addresses: Dict[str, str] = {}
        for group_name, group in self.roles.items():
            if not group.nodes:
                problems.append(f"role group '{group_name}' has no nodes")
        for group_name, node in self.iter_nodes():
            where = f"roles.{group_name}.nodes[{node.name}]"
            if node.name in names:
                problems.append(f"{where}: duplicate node name (also in role group '{names[node.name]}')")
            else:
                names[node.name] = group_name
            if not 0 < node.port <= 65535:
                problems.append(f"{where}: port {node.port} out of range")
            if node.address in addresses:
                problems.append(f"{where}: address {node.address} already used by node '{addresses[node.address]}'")
            else:
                addresses[node.address] = node.name
        return problems


@dataclass
class ClusterMetadata:
    """
    Durable record for one named cluster.

    Only ``topology`` is of interest to the change pipeline; ``revision``,
    ``checksum`` and ``updated_at`` are maintained by the metadata store.
    """

    name: str
    topology: Topology
    version: str = ""
    revision: int = 0
    checksum: str = ""
    updated_at: str = ""
