"""Plan serialization: JSON interchange format handed to the apply engine.

Literals are written inline. Deferred references become
{"ref": <id>, "output": <name>} and computed expressions become
{"op": <name>, "args": [...]}. A literal dict that would decode as one of
those shapes is wrapped as {"$literal": {...}}.
"""

import json
from typing import Any

from stackplan.node import ResourceKind
from stackplan.params import (
    ComputedExpression,
    DeferredReference,
    Literal,
    contains_markers,
)
from stackplan.plan import OrderedPlan, PlannedResource

SUPPORTED_VERSIONS = {1}
FORMAT_ID = "stackplan"

_REF_KEYS = frozenset({"ref", "output"})
_EXPR_KEYS = frozenset({"op", "args"})
_LITERAL_KEY = "$literal"


def _is_reserved_shape(obj: dict) -> bool:
    keys = frozenset(obj)
    return keys in (_REF_KEYS, _EXPR_KEYS) or keys == {_LITERAL_KEY}


def _encode_value(value: Any) -> Any:
    """Recursively encode an attribute value to JSON-serializable form."""
    if isinstance(value, Literal):
        return _encode_value(value.value)

    if isinstance(value, DeferredReference):
        return {"ref": value.node_id, "output": value.output}

    if isinstance(value, ComputedExpression):
        return {"op": value.op, "args": [_encode_value(arg) for arg in value.args]}

    if isinstance(value, dict):
        encoded = {k: _encode_value(v) for k, v in value.items()}
        if _is_reserved_shape(value):
            return {_LITERAL_KEY: encoded}
        return encoded

    if isinstance(value, (list, tuple)):
        return [_encode_value(item) for item in value]

    # Primitives: None, bool, int, float, str
    return value


def _decode_value(obj: Any) -> Any:
    """Recursively decode a JSON value to an attribute value."""
    if isinstance(obj, dict):
        keys = frozenset(obj)
        if keys == _REF_KEYS:
            if not isinstance(obj["ref"], str) or not isinstance(obj["output"], str):
                raise ValueError(f"Reference must have string 'ref' and 'output': {obj!r}")
            return DeferredReference(obj["ref"], obj["output"])
        if keys == _EXPR_KEYS:
            if not isinstance(obj["op"], str) or not isinstance(obj["args"], list):
                raise ValueError(f"Expression must have string 'op' and array 'args': {obj!r}")
            return ComputedExpression(
                obj["op"], tuple(_decode_value(arg) for arg in obj["args"])
            )
        if keys == {_LITERAL_KEY}:
            # Only the wrapped dict itself is exempt; nested values decode normally
            inner = obj[_LITERAL_KEY]
            if not isinstance(inner, dict):
                raise ValueError("$literal value must be an object")
            return {k: _decode_value(v) for k, v in inner.items()}
        return {k: _decode_value(v) for k, v in obj.items()}

    if isinstance(obj, list):
        return [_decode_value(item) for item in obj]

    return obj


def _decode_attribute(obj: Any) -> Any:
    """Decode a top-level attribute, restoring the Literal wrapper."""
    value = _decode_value(obj)
    if contains_markers(value):
        return value
    return Literal(value)


def _encode_resource(resource: PlannedResource) -> dict:
    """Encode a single planned resource to a JSON object."""
    record = {
        "id": resource.id,
        "kind": resource.kind.value,
        "attributes": dict(
            sorted((k, _encode_value(v)) for k, v in resource.attributes.items())
        ),
        "depends_on": list(resource.depends_on),
        "explicit_depends_on": list(resource.explicit_depends_on),
    }
    if resource.template is not None:
        record["template"] = resource.template
        record["index"] = resource.index
    return record


def _validate_resource(obj: Any, position: int) -> None:
    """Validate a resource record before construction."""
    if not isinstance(obj, dict):
        raise ValueError(f"Resource {position} must be an object")
    resource_id = obj.get("id")
    if not isinstance(resource_id, str) or not resource_id:
        raise ValueError(f"Resource {position} must have non-empty string 'id'")
    kind = obj.get("kind")
    if kind not in {k.value for k in ResourceKind}:
        raise ValueError(f"Resource '{resource_id}' has unsupported kind: {kind!r}")
    if not isinstance(obj.get("attributes"), dict):
        raise ValueError(f"Resource '{resource_id}' must have 'attributes' object")
    for key in ("depends_on", "explicit_depends_on"):
        deps = obj.get(key, [])
        if not isinstance(deps, list):
            raise ValueError(f"Resource '{resource_id}' must have '{key}' array")
        for i, dep in enumerate(deps):
            if not isinstance(dep, str):
                raise ValueError(
                    f"Resource '{resource_id}' {key}[{i}] must be string, "
                    f"got {type(dep).__name__}"
                )
    if ("template" in obj) != ("index" in obj):
        raise ValueError(f"Resource '{resource_id}' must have both 'template' and 'index'")


def _decode_resource(obj: dict) -> PlannedResource:
    return PlannedResource(
        id=obj["id"],
        kind=ResourceKind(obj["kind"]),
        attributes={k: _decode_attribute(v) for k, v in obj["attributes"].items()},
        depends_on=tuple(obj.get("depends_on", [])),
        explicit_depends_on=tuple(obj.get("explicit_depends_on", [])),
        template=obj.get("template"),
        index=obj.get("index"),
    )


def _validate_envelope(obj: Any) -> None:
    """Validate top-level envelope."""
    if not isinstance(obj, dict):
        raise ValueError("Document must be a JSON object")
    fmt = obj.get("format")
    if fmt != FORMAT_ID:
        raise ValueError(f"Document format must be '{FORMAT_ID}', got {fmt!r}")
    version = obj.get("version")
    if version not in SUPPORTED_VERSIONS:
        raise ValueError(
            f"Document version {version} is not supported. Supported: {sorted(SUPPORTED_VERSIONS)}"
        )
    if not isinstance(obj.get("resources"), list):
        raise ValueError("Document must have 'resources' array")
    for key in ("provider", "default_tags"):
        if not isinstance(obj.get(key, {}), dict):
            raise ValueError(f"Document '{key}' must be an object")


def emit(plan: OrderedPlan) -> dict:
    """Serialize a plan to an envelope dict, preserving plan order."""
    return {
        "format": FORMAT_ID,
        "version": 1,
        "provider": _encode_value(plan.provider),
        "default_tags": dict(plan.default_tags),
        "resources": [_encode_resource(res) for res in plan],
    }


def dump_plan(plan: OrderedPlan, indent: int | None = None) -> str:
    """Serialize a plan to a JSON string. Deterministic output."""
    return json.dumps(emit(plan), indent=indent)


def load_plan_from_dict(obj: dict) -> OrderedPlan:
    """Load a plan from an envelope dict."""
    _validate_envelope(obj)
    for position, record in enumerate(obj["resources"]):
        _validate_resource(record, position)
    return OrderedPlan(
        resources=tuple(_decode_resource(record) for record in obj["resources"]),
        provider=_decode_value(obj.get("provider", {})),
        default_tags=dict(obj.get("default_tags", {})),
    )


def load_plan(data: str | bytes) -> OrderedPlan:
    """Deserialize a JSON string or bytes to a plan."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return load_plan_from_dict(json.loads(data))
