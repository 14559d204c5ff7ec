"""
Topology codec: strict YAML decoding and canonical YAML encoding.

Decoding rejects anything it does not fully understand (unknown keys,
duplicate keys, wrong types, missing required fields) rather than producing a
partially populated Topology. Encoding is deterministic: field order follows
the model declaration, free-form maps are key-sorted and empty ``omitempty``
fields are dropped, so the same logical topology always renders to the same
bytes.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Hashable, Mapping
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

import yaml
from yaml.constructor import ConstructorError

from clusterledger.errors import TopologyEncodeError, TopologyParseError
from clusterledger.model import OMITEMPTY, Topology, field_key


MERGE_TAG = "tag:yaml.org,2002:merge"


class StrictLoader(yaml.SafeLoader):
    """
    SafeLoader that refuses mappings with repeated keys.

    Only the keys written in the mapping itself are checked. Keys pulled in
    through a ``<<`` merge may be overridden, as YAML allows.
    """

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == MERGE_TAG:
                    continue
                key = self.construct_object(key_node, deep=deep)
                if not isinstance(key, Hashable):
                    continue
                if key in seen:
                    raise ConstructorError(
                        "while constructing a mapping", node.start_mark,
                        f"found duplicate key {key!r}", key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


@lru_cache(maxsize=None)
def _hints(cls: type) -> Dict[str, Any]:
    return get_type_hints(cls)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        return "mapping"
    if isinstance(value, list):
        return "list"
    return type(value).__name__


def _decode_value(value: Any, tp: Any, path: str, unknown: Optional[List[str]] = None) -> Any:
    if tp is Any:
        return value
    if dataclasses.is_dataclass(tp):
        return _decode_dataclass(tp, value, path, unknown)

    origin = get_origin(tp)
    if origin is Union:
        inner = [arg for arg in get_args(tp) if arg is not type(None)]
        if value is None:
            return None
        return _decode_value(value, inner[0], path, unknown)
    if origin is dict:
        if not isinstance(value, Mapping):
            raise TopologyParseError(f"expected a mapping, got {_type_name(value)}", path=path)
        _, value_type = get_args(tp)
        decoded: Dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TopologyParseError(f"mapping keys must be strings, got {key!r}", path=path)
            decoded[key] = _decode_value(item, value_type, _join(path, key), unknown)
        return decoded
    if origin is list:
        if not isinstance(value, list):
            raise TopologyParseError(f"expected a list, got {_type_name(value)}", path=path)
        (item_type,) = get_args(tp)
        return [_decode_value(item, item_type, f"{path}[{i}]", unknown) for i, item in enumerate(value)]
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TopologyParseError(f"expected an integer, got {_type_name(value)}", path=path)
        return value
    if tp is str:
        if not isinstance(value, str):
            raise TopologyParseError(f"expected a string, got {_type_name(value)}", path=path)
        return value
    raise TopologyParseError(f"unsupported field type {tp!r}", path=path)


def _decode_dataclass(cls: type, value: Any, path: str, unknown: Optional[List[str]] = None) -> Any:
    if not isinstance(value, Mapping):
        raise TopologyParseError(f"expected a mapping, got {_type_name(value)}", path=path)

    hints = _hints(cls)
    by_key = {field_key(f): f for f in dataclasses.fields(cls)}
    for key in value:
        if key in by_key:
            continue
        if unknown is not None:
            # Lenient mode: record the field and drop it.
            unknown.append(_join(path, str(key)))
            continue
        raise TopologyParseError(
            f"unknown field {key!r}; known fields: {sorted(by_key)}", path=_join(path, str(key))
        )

    kwargs: Dict[str, Any] = {}
    for key, f in by_key.items():
        child = _join(path, key)
        has_default = (
            f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
        )
        if key not in value:
            if not has_default:
                raise TopologyParseError("missing required field", path=child)
            continue
        raw = value[key]
        if raw is None and has_default:
            # An empty YAML value means "not set".
            continue
        if raw is None:
            raise TopologyParseError("required field must not be empty", path=child)
        kwargs[f.name] = _decode_value(raw, hints[f.name], child, unknown)
    return cls(**kwargs)


def _sorted_tree(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _sorted_tree(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_sorted_tree(item) for item in value]
    return value


def _encode_value(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        out: Dict[str, Any] = {}
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            if f.metadata.get(OMITEMPTY) and not item:
                continue
            out[field_key(f)] = _encode_value(item)
        return out
    if isinstance(value, Mapping):
        if any(dataclasses.is_dataclass(item) for item in value.values()):
            return {key: _encode_value(item) for key, item in value.items()}
        return _sorted_tree(value)
    if isinstance(value, list):
        return [_encode_value(item) for item in value]
    return value


class TopologyCodec:
    """Converts between YAML bytes, plain documents and Topology values."""

    def decode(self, data: bytes, source: Optional[str] = None) -> Topology:
        """
        Strictly parse a topology document.

        Raises:
            TopologyParseError: on undecodable bytes, invalid YAML, an empty or
                non-mapping document, any schema violation, or a topology that
                fails its consistency checks.
        """
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TopologyParseError(f"not valid UTF-8 ({exc.reason})", source=source) from exc
        try:
            document = yaml.load(text, Loader=StrictLoader)
        except yaml.YAMLError as exc:
            raise TopologyParseError(str(exc), source=source) from exc
        if document is None:
            raise TopologyParseError("document is empty", source=source)
        try:
            topology = self.from_document(document)
        except TopologyParseError as exc:
            if source is None:
                raise
            raise exc.with_source(source) from exc
        problems = topology.validate()
        if problems:
            raise TopologyParseError("; ".join(problems), source=source)
        return topology

    def from_document(
        self, document: Any, path: str = "", unknown: Optional[List[str]] = None
    ) -> Topology:
        """
        Build a Topology from a plain document.

        Unknown fields raise TopologyParseError unless ``unknown`` is given,
        in which case their paths are appended to it and the fields dropped.
        Type errors and missing required fields always raise.
        """
        return _decode_dataclass(Topology, document, path, unknown)

    def to_document(self, topology: Topology) -> Dict[str, Any]:
        return _encode_value(topology)

    def encode(self, topology: Topology) -> str:
        """Render the canonical text of ``topology``."""
        return self.dump(self.to_document(topology))

    @staticmethod
    def dump(document: Dict[str, Any]) -> str:
        try:
            return yaml.safe_dump(
                document,
                sort_keys=False,
                default_flow_style=False,
                allow_unicode=True,
            )
        except yaml.YAMLError as exc:
            raise TopologyEncodeError(str(exc)) from exc
