"""Structural diff between two JSON-like documents.

Produces a flat list of ``add`` / ``remove`` / ``replace`` operations, each
carrying the path (mapping keys and list indices) it applies to.  The differ
knows nothing about notebooks; it is a generic tree differ.

Traversal is a stable pre-order walk:

1. Mappings: keys of ``old`` in insertion order.  Keys missing from ``new``
   are removed, keys present in both are recursed into.  Then keys only in
   ``new`` are added, in ``new``'s order.
2. Lists: positional.  Common indices are recursed into, surplus new items
   are added in ascending index order, surplus old items are removed in
   descending index order so that the patch applies sequentially.
3. Anything else: replaced when the values differ.  Equality is
   type-strict, so ``1``, ``1.0`` and ``True`` are all distinct.

Unchanged subtrees produce no operations, so identical documents yield ``[]``.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

from ..types import Patch, PatchError


def _is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _same_scalar(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def diff(old: Any, new: Any, path: Sequence[str | int] = ()) -> list[Patch]:
    """Return the patch that turns ``old`` into ``new``."""
    patches: list[Patch] = []
    _diff_value(old, new, list(path), patches)
    return patches


def _diff_value(old: Any, new: Any, path: list[str | int], patches: list[Patch]) -> None:
    if old is new:
        return
    if _is_mapping(old) and _is_mapping(new):
        _diff_mapping(old, new, path, patches)
    elif _is_list(old) and _is_list(new):
        _diff_list(old, new, path, patches)
    elif _is_mapping(old) or _is_mapping(new) or _is_list(old) or _is_list(new):
        # Container vs. something of another shape
        patches.append({"op": "replace", "path": path, "value": new})
    elif not _same_scalar(old, new):
        patches.append({"op": "replace", "path": path, "value": new})


def _diff_mapping(
    old: Mapping, new: Mapping, path: list[str | int], patches: list[Patch],
) -> None:
    for key, old_value in old.items():
        if key not in new:
            patches.append({"op": "remove", "path": [*path, key]})
        else:
            _diff_value(old_value, new[key], [*path, key], patches)
    for key, new_value in new.items():
        if key not in old:
            patches.append({"op": "add", "path": [*path, key], "value": new_value})


def _diff_list(
    old: Sequence, new: Sequence, path: list[str | int], patches: list[Patch],
) -> None:
    common = min(len(old), len(new))
    for i in range(common):
        _diff_value(old[i], new[i], [*path, i], patches)
    for i in range(common, len(new)):
        patches.append({"op": "add", "path": [*path, i], "value": new[i]})
    for i in range(len(old) - 1, common - 1, -1):
        patches.append({"op": "remove", "path": [*path, i]})


# ---------------------------------------------------------------------------
# Applying patches
# ---------------------------------------------------------------------------

def apply_patch(document: Any, patches: Sequence[Patch]) -> Any:
    """Apply ``patches`` to a deep copy of ``document`` and return it.

    Raises:
        PatchError: If an operation targets a path that does not exist.
    """
    result = copy.deepcopy(document)
    for patch in patches:
        result = _apply_one(result, patch)
    return result


def _apply_one(document: Any, patch: Patch) -> Any:
    op = patch.get("op")
    path = list(patch.get("path", []))

    if not path:
        if op == "replace" or op == "add":
            return copy.deepcopy(patch.get("value"))
        raise PatchError(f"Cannot {op} the document root")

    parent = _resolve(document, path[:-1])
    key = path[-1]
    value = copy.deepcopy(patch.get("value"))

    if isinstance(parent, dict):
        if op == "add":
            parent[key] = value
        elif op == "replace":
            if key not in parent:
                raise PatchError(f"replace: missing key {key!r} at {path[:-1]}")
            parent[key] = value
        elif op == "remove":
            if key not in parent:
                raise PatchError(f"remove: missing key {key!r} at {path[:-1]}")
            del parent[key]
        else:
            raise PatchError(f"Unknown patch op {op!r}")
    elif isinstance(parent, list):
        if not isinstance(key, int):
            raise PatchError(f"List index must be an int, got {key!r} at {path[:-1]}")
        if op == "add":
            if not 0 <= key <= len(parent):
                raise PatchError(f"add: index {key} out of range at {path[:-1]}")
            parent.insert(key, value)
        elif op == "replace":
            if not 0 <= key < len(parent):
                raise PatchError(f"replace: index {key} out of range at {path[:-1]}")
            parent[key] = value
        elif op == "remove":
            if not 0 <= key < len(parent):
                raise PatchError(f"remove: index {key} out of range at {path[:-1]}")
            del parent[key]
        else:
            raise PatchError(f"Unknown patch op {op!r}")
    else:
        raise PatchError(f"Cannot index into {type(parent).__name__} at {path[:-1]}")
    return document


def _resolve(document: Any, path: list[str | int]) -> Any:
    node = document
    for i, key in enumerate(path):
        try:
            node = node[key]
        except (KeyError, IndexError, TypeError) as e:
            raise PatchError(f"Path {path[: i + 1]} does not exist") from e
    return node
