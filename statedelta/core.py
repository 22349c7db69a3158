"""
statedelta.core — Documents, differences and the lockstep diff walk
===================================================================

§1  DOCUMENTS
─────────────

A Document is the plain Python tree produced by any JSON/YAML decoder:

    None                    → null
    bool                    → boolean
    int / float             → number
    str                     → string
    list / tuple            → sequence
    dict (str keys)         → mapping

No resource-specific classes exist at this layer.  Both the desired
and the observed state of a resource are Documents.

Key design choice: bool is NOT a number.  Python makes bool a subclass
of int (True == 1), so without an explicit guard a desired `true`
would silently equal an observed `1`.  int and float ARE the same kind,
so `1` and `1.0` compare equal.


§2  THE WALK
────────────

diff(desired, observed) walks both trees in lockstep from the root:

    mapping  / mapping   → recurse on every key of the union (sorted)
    sequence / sequence  → recurse index-wise, extra tail items are
                           Added / Removed one by one
    only desired         → Removed   (observed lacks what desired wants)
    only observed        → Added     (observed carries something extra)
    kind differs         → TypeMismatch
    scalars differ       → Changed

Composite nodes never produce a difference at their own path; only the
leaves and indices where the trees actually diverge do.

Output order is a stable pre-order traversal with lexicographically
sorted mapping keys, so the result never depends on dict insertion
order.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .errors import MalformedDocument


# ═══════════════════════════════════════════════════════════════════
#  DOCUMENT KINDS
# ═══════════════════════════════════════════════════════════════════

Document = Any
PathSegment = Union[str, int]

NULL = "null"
BOOLEAN = "boolean"
NUMBER = "number"
STRING = "string"
SEQUENCE = "sequence"
MAPPING = "mapping"


class _Absent:
    """Marker for a key or index that does not exist on one side."""
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return "ABSENT"


ABSENT = _Absent()


def kind_of(value: Document, path: tuple = ()) -> str:
    """
    Return the fundamental kind of a Document node.

    Raises MalformedDocument for anything that is not a Document value,
    including non-finite floats, which have no JSON/YAML equality.
    """
    if value is None:
        return NULL
    # bool before number: bool is a subclass of int
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise MalformedDocument(path, f"non-finite number {value!r}")
        return NUMBER
    if isinstance(value, str):
        return STRING
    if isinstance(value, (list, tuple)):
        return SEQUENCE
    if isinstance(value, dict):
        return MAPPING
    raise MalformedDocument(path, f"unsupported value of type {type(value).__name__}")


def _sorted_keys(mapping: dict, path: tuple) -> list[str]:
    for key in mapping:
        if not isinstance(key, str):
            raise MalformedDocument(path, f"mapping key {key!r} is not a string")
    return sorted(mapping)


# ═══════════════════════════════════════════════════════════════════
#  RESULT MODEL
# ═══════════════════════════════════════════════════════════════════

class DiffKind(Enum):
    """Kinds of divergence between desired and observed."""
    ADDED = "Added"                 # only in observed
    REMOVED = "Removed"             # only in desired
    CHANGED = "Changed"             # same scalar kind, different value
    TYPE_MISMATCH = "TypeMismatch"  # different fundamental kinds


@dataclass(frozen=True)
class Difference:
    """A single path-addressed divergence between two documents."""
    path: tuple[PathSegment, ...]
    kind: DiffKind
    desired: Any = ABSENT
    observed: Any = ABSENT

    @property
    def dotted_path(self) -> str:
        """Render the path as `spec.containers[0].image`."""
        out = ""
        for seg in self.path:
            if isinstance(seg, int):
                out += f"[{seg}]"
            else:
                out += f".{seg}" if out else seg
        return out or "(root)"

    def to_python(self) -> dict:
        """Plain-dict form; absent sides are omitted."""
        out: dict[str, Any] = {"path": list(self.path), "kind": self.kind.value}
        if self.desired is not ABSENT:
            out["desired"] = self.desired
        if self.observed is not ABSENT:
            out["observed"] = self.observed
        return out

    def __repr__(self) -> str:
        path_str = self.dotted_path
        if self.kind == DiffKind.ADDED:
            return f"Added at {path_str}: {self.observed!r}"
        if self.kind == DiffKind.REMOVED:
            return f"Removed at {path_str}: {self.desired!r}"
        return f"{self.kind.value} at {path_str}: {self.desired!r} → {self.observed!r}"


# ═══════════════════════════════════════════════════════════════════
#  DIFF WALK
# ═══════════════════════════════════════════════════════════════════

def diff(desired: Document, observed: Document, path: tuple = ()) -> list[Difference]:
    """
    Compare two Documents and return every difference, in pre-order.

    Neither input is normalized or mutated here; see
    statedelta.compare.Comparator for the normalizing entry point.
    An empty list means the two documents are equal.
    """
    out: list[Difference] = []
    _walk(desired, observed, path, out)
    return out


def _walk(desired: Document, observed: Document, path: tuple,
          out: list[Difference]) -> None:
    if desired is ABSENT:
        check_tree(observed, path)
        out.append(Difference(path, DiffKind.ADDED, observed=observed))
        return
    if observed is ABSENT:
        check_tree(desired, path)
        out.append(Difference(path, DiffKind.REMOVED, desired=desired))
        return

    d_kind = kind_of(desired, path)
    o_kind = kind_of(observed, path)

    if d_kind != o_kind:
        check_tree(desired, path)
        check_tree(observed, path)
        out.append(Difference(path, DiffKind.TYPE_MISMATCH,
                              desired=desired, observed=observed))
        return

    if d_kind == MAPPING:
        _walk_mapping(desired, observed, path, out)
    elif d_kind == SEQUENCE:
        _walk_sequence(desired, observed, path, out)
    elif desired != observed:
        out.append(Difference(path, DiffKind.CHANGED,
                              desired=desired, observed=observed))


def _walk_mapping(desired: dict, observed: dict, path: tuple,
                  out: list[Difference]) -> None:
    keys = set(_sorted_keys(desired, path)) | set(_sorted_keys(observed, path))
    for key in sorted(keys):
        _walk(desired.get(key, ABSENT), observed.get(key, ABSENT),
              path + (key,), out)


def _walk_sequence(desired, observed, path: tuple,
                   out: list[Difference]) -> None:
    shared = min(len(desired), len(observed))
    for i in range(shared):
        _walk(desired[i], observed[i], path + (i,), out)

    # Positional only: tail items of the longer side
    for i in range(shared, len(desired)):
        _walk(desired[i], ABSENT, path + (i,), out)
    for i in range(shared, len(observed)):
        _walk(ABSENT, observed[i], path + (i,), out)


def check_tree(value: Document, path: tuple = ()) -> None:
    """
    Validate that `value` is a well-formed Document all the way down.

    Raises MalformedDocument at the first offending node.
    """
    kind = kind_of(value, path)
    if kind == MAPPING:
        for key in _sorted_keys(value, path):
            check_tree(value[key], path + (key,))
    elif kind == SEQUENCE:
        for i, item in enumerate(value):
            check_tree(item, path + (i,))
