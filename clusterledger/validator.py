"""
Immutable field validation between two topologies.

Both trees are walked in lock-step: role groups are matched by name, list
elements by their identity field, then fields in declaration order. Only
fields the policy marks immutable are compared; everything else is traversed
(to reach nested immutable fields) but never compared itself. Removing a role
group or a node counts as a change of its identity.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any, Callable

from clusterledger.errors import ImmutableFieldViolation
from clusterledger.model import Topology, field_key, identity_field, is_immutable

logger = logging.getLogger(__name__)

FieldPolicy = Callable[[dataclasses.Field], bool]


class ImmutableFieldValidator:
    """Rejects candidate topologies that alter immutable fields."""

    def __init__(self, policy: FieldPolicy = is_immutable) -> None:
        self._policy = policy

    def check_diff(self, original: Topology, candidate: Topology) -> None:
        """
        Raise ImmutableFieldViolation on the first immutable field that differs.

        Fields are visited in the original topology's order, so the reported
        violation is deterministic when several fields changed.
        """
        self._compare(original, candidate, "")
        logger.debug("No immutable field changed")

    def _compare(self, old: Any, new: Any, path: str) -> None:
        if dataclasses.is_dataclass(old) and dataclasses.is_dataclass(new):
            self._compare_dataclass(old, new, path)
        elif isinstance(old, Mapping) and isinstance(new, Mapping):
            self._compare_groups(old, new, path)
        elif isinstance(old, list) and isinstance(new, list):
            self._compare_elements(old, new, path)

    def _compare_dataclass(self, old: Any, new: Any, path: str) -> None:
        for f in dataclasses.fields(old):
            child = f"{path}.{field_key(f)}" if path else field_key(f)
            old_value = getattr(old, f.name)
            new_value = getattr(new, f.name)
            if self._policy(f):
                if old_value != new_value:
                    raise ImmutableFieldViolation(child, old_value, new_value)
                continue
            self._compare(old_value, new_value, child)

    def _compare_groups(self, old: Mapping, new: Mapping, path: str) -> None:
        # Free-form config maps hold no tagged fields and are left alone.
        for key, old_item in old.items():
            if not dataclasses.is_dataclass(old_item):
                continue
            child = f"{path}.{key}"
            if key not in new:
                raise ImmutableFieldViolation(child, key, None)
            self._compare(old_item, new[key], child)

    def _compare_elements(self, old: list, new: list, path: str) -> None:
        if not old or not dataclasses.is_dataclass(old[0]):
            return
        ident = identity_field(type(old[0]))
        if ident is None:
            for i, old_item in enumerate(old):
                if i >= len(new):
                    raise ImmutableFieldViolation(f"{path}[{i}]", old_item, None)
                self._compare(old_item, new[i], f"{path}[{i}]")
            return

        by_identity = {getattr(item, ident.name): item for item in new}
        for old_item in old:
            key = getattr(old_item, ident.name)
            child = f"{path}[{key}]"
            if key not in by_identity:
                raise ImmutableFieldViolation(f"{child}.{field_key(ident)}", key, None)
            self._compare(old_item, by_identity[key], child)


def check_diff(original: Topology, candidate: Topology) -> None:
    ImmutableFieldValidator().check_diff(original, candidate)
