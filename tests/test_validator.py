"""
Tests for immutable field validation.

Verifies that:
    1. Changing any field tagged immutable fails with its path and both values
    2. Changing untagged fields (config maps, labels, ssh_port) always passes
    3. Removing a node or role group is a violation on its identity
    4. Adding nodes or role groups is permitted
"""

import copy
import dataclasses

import pytest

from clusterledger.errors import ImmutableFieldViolation
from clusterledger.model import NodeSpec, RoleGroup
from clusterledger.validator import ImmutableFieldValidator, check_diff


@pytest.fixture
def candidate(sample_topology):
    return copy.deepcopy(sample_topology)


def test_identical_topologies_pass(sample_topology, candidate):
    check_diff(sample_topology, candidate)


def test_node_role_change_names_node(sample_topology, candidate):
    candidate.roles["storage"].nodes[0].role = "cache"
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "roles.storage.nodes[node-a].role"
    assert ctx.value.old_value == "db"
    assert ctx.value.new_value == "cache"
    assert "'db' to 'cache'" in str(ctx.value)


@pytest.mark.parametrize(
    "attr, value",
    [
        ("host", "10.9.9.9"),
        ("port", 6543),
        ("deploy_dir", "/srv/elsewhere"),
        ("data_dir", "/mnt/elsewhere"),
    ],
)
def test_node_identity_fields_are_immutable(sample_topology, candidate, attr, value):
    setattr(candidate.roles["edge"].nodes[0], attr, value)
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == f"roles.edge.nodes[node-c].{attr}"
    assert ctx.value.new_value == value


@pytest.mark.parametrize("attr", ["user", "deploy_dir", "data_dir", "arch"])
def test_global_immutable_fields(sample_topology, candidate, attr):
    setattr(candidate.global_, attr, "changed")
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == f"global.{attr}"


def test_mutable_fields_pass_through(sample_topology, candidate):
    candidate.global_.ssh_port = 2222
    candidate.global_.config = {"log.level": "debug", "new": [1, 2]}
    candidate.roles["storage"].config["max_connections"] = 500
    candidate.roles["storage"].nodes[0].labels = {"zone": "z2", "rack": "r7"}
    candidate.roles["edge"].nodes[0].config = {"timeout": "30s"}
    check_diff(sample_topology, candidate)


def test_node_order_does_not_matter(sample_topology, candidate):
    candidate.roles["storage"].nodes.reverse()
    check_diff(sample_topology, candidate)


def test_removed_node_is_identity_violation(sample_topology, candidate):
    del candidate.roles["storage"].nodes[1]
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "roles.storage.nodes[node-b].name"
    assert ctx.value.old_value == "node-b"
    assert ctx.value.new_value is None
    assert "removed" in str(ctx.value)


def test_renamed_node_counts_as_removal(sample_topology, candidate):
    candidate.roles["edge"].nodes[0].name = "node-z"
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "roles.edge.nodes[node-c].name"


def test_removed_role_group_is_violation(sample_topology, candidate):
    del candidate.roles["edge"]
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "roles.edge"
    assert ctx.value.old_value == "edge"


def test_node_moved_between_groups_is_violation(sample_topology, candidate):
    moved = candidate.roles["storage"].nodes.pop(1)
    candidate.roles["edge"].nodes.append(moved)
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "roles.storage.nodes[node-b].name"


def test_additions_are_permitted(sample_topology, candidate):
    candidate.roles["edge"].nodes.append(
        NodeSpec(name="node-d", role="proxy", host="10.0.2.2", port=8080)
    )
    candidate.roles["cache"] = RoleGroup(
        nodes=[NodeSpec(name="node-e", role="cache", host="10.0.3.1", port=6379)]
    )
    check_diff(sample_topology, candidate)


def test_first_violation_in_declaration_order(sample_topology, candidate):
    candidate.global_.user = "root"
    candidate.roles["storage"].nodes[0].role = "cache"
    with pytest.raises(ImmutableFieldViolation) as ctx:
        check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "global.user"


def test_custom_policy_is_honoured(sample_topology, candidate):
    candidate.global_.ssh_port = 2222

    def policy(f: dataclasses.Field) -> bool:
        return f.name == "ssh_port"

    with pytest.raises(ImmutableFieldViolation) as ctx:
        ImmutableFieldValidator(policy=policy).check_diff(sample_topology, candidate)
    assert ctx.value.field_path == "global.ssh_port"

    # Under the custom policy the role is free to change.
    candidate.global_.ssh_port = sample_topology.global_.ssh_port
    candidate.roles["storage"].nodes[0].role = "cache"
    ImmutableFieldValidator(policy=policy).check_diff(sample_topology, candidate)
