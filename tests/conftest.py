# tests/conftest.py
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from clusterledger.codec import TopologyCodec
from clusterledger.confirm import ConfirmationGate
from clusterledger.errors import ChangeCancelled, MetadataWriteError
from clusterledger.model import ClusterMetadata, GlobalSpec, NodeSpec, RoleGroup, Topology
from clusterledger.store import MetadataStore

SAMPLE_TOPOLOGY_YAML = """\
global:
  user: ops
  ssh_port: 22
  deploy_dir: /opt/cluster
  data_dir: /data/cluster
  arch: amd64
  config:
    log.level: info
roles:
  storage:
    nodes:
    - name: node-a
      role: db
      host: 10.0.1.1
      port: 5432
      labels:
        zone: z1
    - name: node-b
      role: db
      host: 10.0.1.2
      port: 5432
    config:
      max_connections: 200
  edge:
    nodes:
    - name: node-c
      role: proxy
      host: 10.0.2.1
      port: 8080
"""


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


class ScriptedGate(ConfirmationGate):
    """Confirmation gate answering from a fixed script and recording prompts."""

    def __init__(self, approve: bool):
        self.approve = approve
        self.prompts: List[str] = []

    def confirm(self, prompt: str) -> None:
        self.prompts.append(prompt)
        if not self.approve:
            raise ChangeCancelled()


class RecordingStore(MetadataStore):
    """MetadataStore that counts save calls and can be told to fail them."""

    def __init__(self, *args, fail_save: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.saves: List[str] = []
        self.fail_save = fail_save

    def save(self, name: str, metadata: ClusterMetadata) -> None:
        self.saves.append(name)
        if self.fail_save:
            raise MetadataWriteError(str(self.meta_path(name)), "No space left on device")
        super().save(name, metadata)


@pytest.fixture
def codec() -> TopologyCodec:
    return TopologyCodec()


@pytest.fixture
def sample_topology(codec) -> Topology:
    return codec.decode(SAMPLE_TOPOLOGY_YAML.encode("utf-8"))


@pytest.fixture
def built_topology() -> Topology:
    """Small topology built in code rather than parsed."""
    return Topology(
        global_=GlobalSpec(user="ops", deploy_dir="/opt/cluster"),
        roles={
            "storage": RoleGroup(
                nodes=[NodeSpec(name="node-a", role="db", host="10.0.1.1", port=5432)],
                config={"max_connections": 100},
            ),
        },
    )


@pytest.fixture
def store(tmp_path, codec) -> RecordingStore:
    return RecordingStore(tmp_path / "home", codec=codec, max_backups=3, clock=TickingClock())


@pytest.fixture
def registered(store, sample_topology) -> str:
    """Register the sample cluster and reset the save counter."""
    store.create("prod", sample_topology, version="v1.0.0")
    store.saves.clear()
    return "prod"


@pytest.fixture
def write_candidate(tmp_path):
    def _write(content, name: str = "candidate.yaml") -> Path:
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_yaml() -> str:
    return SAMPLE_TOPOLOGY_YAML


@pytest.fixture
def gate_factory():
    return ScriptedGate
