"""Structural diffs between observations, expressed as JSON Patch (RFC 6902)."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import PatchError
from .models import Observation, canonical

PatchOp = Dict[str, Any]


@dataclass(slots=True)
class DiffEnvelope:
    """A patch from one observation to the next, stamped with the newer one's clocks."""

    ts: float
    monotonic_ms: int
    patch: List[PatchOp] = field(default_factory=list)


def escape_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def unescape_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def _child(path: str, token: Any) -> str:
    return f"{path}/{escape_token(str(token))}"


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def diff(previous: Any, current: Any, path: str = "") -> List[PatchOp]:
    """Operations turning the JSON tree ``previous`` into ``current``.

    Objects are compared key by key, arrays index by index; no attempt is
    made to detect moves, so the patch is correct but not minimal.
    """

    ops: List[PatchOp] = []
    _diff_into(ops, previous, current, path)
    return ops


def _diff_into(ops: List[PatchOp], previous: Any, current: Any, path: str) -> None:
    if isinstance(previous, dict) and isinstance(current, dict):
        for key, old in previous.items():
            if key not in current:
                ops.append({"op": "remove", "path": _child(path, key)})
            else:
                _diff_into(ops, old, current[key], _child(path, key))
        for key, new in current.items():
            if key not in previous:
                ops.append({"op": "add", "path": _child(path, key), "value": copy.deepcopy(new)})
        return
    if isinstance(previous, list) and isinstance(current, list):
        shared = min(len(previous), len(current))
        for index in range(shared):
            _diff_into(ops, previous[index], current[index], _child(path, index))
        for index in range(len(previous) - 1, shared - 1, -1):
            ops.append({"op": "remove", "path": _child(path, index)})
        for index in range(shared, len(current)):
            ops.append({"op": "add", "path": _child(path, index), "value": copy.deepcopy(current[index])})
        return
    if _is_container(previous) or _is_container(current) or not _scalar_equal(previous, current):
        ops.append({"op": "replace", "path": path, "value": copy.deepcopy(current)})


def _scalar_equal(left: Any, right: Any) -> bool:
    # JSON distinguishes true from 1 and 1 from 1.0 on the wire.
    return type(left) is type(right) and left == right


def _json_equal(left: Any, right: Any) -> bool:
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(_json_equal(left[key], right[key]) for key in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(_json_equal(a, b) for a, b in zip(left, right))
    if _is_container(left) or _is_container(right):
        return False
    return _scalar_equal(left, right)


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------


def parse_pointer(pointer: str) -> List[str]:
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise PatchError(f"invalid JSON pointer: {pointer!r}")
    return [unescape_token(token) for token in pointer[1:].split("/")]


def _list_index(container: list, token: str, *, allow_end: bool) -> int:
    if allow_end and token == "-":
        return len(container)
    if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
        raise PatchError(f"invalid array index: {token!r}")
    index = int(token)
    limit = len(container) if allow_end else len(container) - 1
    if index > limit:
        raise PatchError(f"array index out of range: {index}")
    return index


def _resolve(document: Any, tokens: List[str]) -> Any:
    target = document
    for token in tokens:
        if isinstance(target, dict):
            if token not in target:
                raise PatchError(f"path not found: {token!r}")
            target = target[token]
        elif isinstance(target, list):
            target = target[_list_index(target, token, allow_end=False)]
        else:
            raise PatchError(f"cannot traverse scalar at {token!r}")
    return target


def _parent(document: Any, pointer: str) -> Tuple[Any, str]:
    tokens = parse_pointer(pointer)
    return _resolve(document, tokens[:-1]), tokens[-1]


def _get(document: Any, pointer: str) -> Any:
    return _resolve(document, parse_pointer(pointer))


def _add(document: Any, pointer: str, value: Any) -> Any:
    if pointer == "":
        return value
    parent, token = _parent(document, pointer)
    if isinstance(parent, dict):
        parent[token] = value
    elif isinstance(parent, list):
        parent.insert(_list_index(parent, token, allow_end=True), value)
    else:
        raise PatchError(f"cannot add into scalar at {pointer!r}")
    return document


def _remove(document: Any, pointer: str) -> Tuple[Any, Any]:
    if pointer == "":
        raise PatchError("cannot remove the document root")
    parent, token = _parent(document, pointer)
    if isinstance(parent, dict):
        if token not in parent:
            raise PatchError(f"path not found: {pointer!r}")
        return document, parent.pop(token)
    if isinstance(parent, list):
        return document, parent.pop(_list_index(parent, token, allow_end=False))
    raise PatchError(f"cannot remove from scalar at {pointer!r}")


def _replace(document: Any, pointer: str, value: Any) -> Any:
    if pointer == "":
        return value
    parent, token = _parent(document, pointer)
    if isinstance(parent, dict):
        if token not in parent:
            raise PatchError(f"path not found: {pointer!r}")
        parent[token] = value
    elif isinstance(parent, list):
        parent[_list_index(parent, token, allow_end=False)] = value
    else:
        raise PatchError(f"cannot replace inside scalar at {pointer!r}")
    return document


def _operand(op: PatchOp, key: str) -> Any:
    if key not in op:
        raise PatchError(f"{op.get('op')!r} operation is missing {key!r}")
    return op[key]


def apply_patch(document: Any, patch: List[PatchOp]) -> Any:
    """Apply ``patch`` to a copy of ``document`` and return the result."""

    result = copy.deepcopy(document)
    for op in patch:
        name = op.get("op")
        pointer = op.get("path")
        if not isinstance(pointer, str):
            raise PatchError(f"operation without a path: {op!r}")
        if name == "add":
            result = _add(result, pointer, copy.deepcopy(_operand(op, "value")))
        elif name == "remove":
            result, _ = _remove(result, pointer)
        elif name == "replace":
            result = _replace(result, pointer, copy.deepcopy(_operand(op, "value")))
        elif name == "move":
            source = _operand(op, "from")
            if pointer.startswith(source + "/"):
                raise PatchError(f"cannot move {source!r} into its own child")
            result, value = _remove(result, source)
            result = _add(result, pointer, value)
        elif name == "copy":
            result = _add(result, pointer, copy.deepcopy(_get(result, _operand(op, "from"))))
        elif name == "test":
            if not _json_equal(_get(result, pointer), _operand(op, "value")):
                raise PatchError(f"test failed at {pointer!r}")
        else:
            raise PatchError(f"unknown patch operation: {name!r}")
    return result


def create_diff_envelope(previous: Observation, current: Observation) -> DiffEnvelope:
    """Diff two observations; raises :class:`~vizier.errors.EncodingError` on bad records."""

    previous_tree = canonical(previous)
    current_tree = canonical(current)
    return DiffEnvelope(
        ts=current.ts,
        monotonic_ms=current.monotonic_ms,
        patch=diff(previous_tree, current_tree),
    )
