"""
statedelta.transform — Server-side representation normalization.

Servers rarely store exactly what a client submits.  A Secret posted
with `stringData` comes back with those values base64-encoded under
`data`, and `stringData` itself is gone.  Comparing the raw documents
would report drift forever.

A NormalizationRule rewrites ONE document into its canonical,
server-equivalent form.  Rules never see the other side of a
comparison, so their output can be cached and tested in isolation.

A NormalizerRegistry holds rules in registration order and applies
every rule whose `applies` predicate matches.  Registries are built
explicitly (see default_registry) and passed to whatever needs them;
nothing is registered as an import side effect.

Rules must be idempotent: normalizing a canonical document is a no-op.
"""

import base64
import logging
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Union

from .core import ABSENT, Document
from .errors import (
    InvalidFieldType,
    NormalizationFailed,
    RegistryFrozen,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  RULE INTERFACE
# ═══════════════════════════════════════════════════════════════════

class NormalizationRule:
    """
    Base class for normalization rules.  Not used directly.

    Subclasses implement:
        applies(doc)    cheap, side-effect-free predicate
        normalize(doc)  return the canonical document (may mutate `doc`)
    """
    name: str = "rule"

    def applies(self, doc: Document) -> bool:
        raise NotImplementedError

    def normalize(self, doc: Document) -> Document:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


# ═══════════════════════════════════════════════════════════════════
#  ENCODINGS
# ═══════════════════════════════════════════════════════════════════

def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


ENCODINGS: dict[str, Callable[[str], str]] = {
    "base64": _b64,
    "identity": lambda value: value,
}


# ═══════════════════════════════════════════════════════════════════
#  FIELD PATHS
# ═══════════════════════════════════════════════════════════════════

FieldPath = Union[str, tuple[str, ...]]


def _split(field: FieldPath) -> tuple[str, ...]:
    parts = tuple(field.split(".")) if isinstance(field, str) else tuple(field)
    if not parts or any(not p for p in parts):
        raise ValueError(f"invalid field path: {field!r}")
    return parts


def _lookup(doc: dict, parts: tuple[str, ...]) -> Any:
    """
    Return the value at `parts`, or ABSENT.

    Every intermediate node that exists must be a mapping.
    """
    node: Any = doc
    for depth, part in enumerate(parts):
        if not isinstance(node, dict):
            raise InvalidFieldType(".".join(parts[:depth]), None, node, "a mapping")
        if part not in node:
            return ABSENT
        node = node[part]
    return node


def _assign(doc: dict, parts: tuple[str, ...], value: Any) -> None:
    node = doc
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def _remove(doc: dict, parts: tuple[str, ...]) -> None:
    node = doc
    for part in parts[:-1]:
        node = node[part]
    node.pop(parts[-1], None)


# ═══════════════════════════════════════════════════════════════════
#  FIELD FOLDING
# ═══════════════════════════════════════════════════════════════════

def _marker_matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, tuple):
        return any(_marker_matches(actual, e) for e in expected)
    if expected is ABSENT or actual is ABSENT:
        return actual is expected
    # bool is not a marker for 1, nor 1 for True
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


class FieldFoldingRule(NormalizationRule):
    """
    Fold a write-only convenience field into its canonical stored field.

    Every key under `source` is encoded and written into `target` under
    the same key, overwriting whatever `target` already held for that
    key.  `source` is then removed.

    Arguments:
        name:     Rule name, used in error messages and logs.
        source:   Write-only field path, e.g. "stringData".
        target:   Canonical field path, e.g. "data".
        encoding: Key into ENCODINGS.
        match:    Top-level marker fields that must all be equal for the
                  rule to apply, e.g. {"kind": "Secret"}.  A tuple (or
                  list) value lists the accepted alternatives; ABSENT
                  among them accepts a missing field.
                  None matches every mapping document.

    Only flat string values are folded.  Any other value under `source`,
    including nested mappings and sequences, raises InvalidFieldType.
    """

    def __init__(
        self,
        name: str,
        source: FieldPath,
        target: FieldPath,
        encoding: str = "base64",
        match: Optional[Mapping[str, Any]] = None,
    ):
        if encoding not in ENCODINGS:
            raise ValueError(
                f"unknown encoding {encoding!r}; expected one of {sorted(ENCODINGS)}"
            )
        self.name = name
        self.source = _split(source)
        self.target = _split(target)
        if self.source == self.target:
            raise ValueError(f"source and target are the same field: {source!r}")
        shorter = min(len(self.source), len(self.target))
        if self.source[:shorter] == self.target[:shorter]:
            raise ValueError(
                f"source {source!r} and target {target!r} overlap: "
                "one field contains the other"
            )
        self.encoding = encoding
        self.match = {
            k: tuple(v) if isinstance(v, list) else v
            for k, v in (match or {}).items()
        }
        self._encode = ENCODINGS[encoding]

    @property
    def source_field(self) -> str:
        return ".".join(self.source)

    @property
    def target_field(self) -> str:
        return ".".join(self.target)

    def applies(self, doc: Document) -> bool:
        if not isinstance(doc, dict):
            return False
        return all(_marker_matches(doc.get(k, ABSENT), v) for k, v in self.match.items())

    def normalize(self, doc: Document) -> Document:
        source = _lookup(doc, self.source)
        if source is ABSENT or source is None or source == {}:
            return doc
        if not isinstance(source, dict):
            raise InvalidFieldType(self.source_field, None, source, "a mapping")

        target = _lookup(doc, self.target)
        if target is ABSENT or target is None:
            target = {}
        elif not isinstance(target, dict):
            raise InvalidFieldType(self.target_field, None, target, "a mapping")

        # Validate everything before touching the document
        for key, value in source.items():
            if not isinstance(value, str):
                raise InvalidFieldType(self.source_field, key, value, "a string")

        merged = dict(target)
        for key, value in source.items():
            merged[key] = self._encode(value)

        _remove(doc, self.source)
        _assign(doc, self.target, merged)
        return doc

    def __repr__(self) -> str:
        return (f"FieldFoldingRule({self.name!r}, {self.source_field} → "
                f"{self.target_field}, encoding={self.encoding!r})")


def secret_rule() -> FieldFoldingRule:
    """
    Core Secret: `stringData` is folded into base64 `data`.

    Manifests often omit `apiVersion`, so a missing one is accepted
    alongside "v1".
    """
    return FieldFoldingRule(
        "secret-string-data",
        source="stringData",
        target="data",
        encoding="base64",
        match={"apiVersion": ("v1", ABSENT), "kind": "Secret"},
    )


# ═══════════════════════════════════════════════════════════════════
#  REGISTRY
# ═══════════════════════════════════════════════════════════════════

class NormalizerRegistry:
    """
    Ordered collection of normalization rules.

    Populate it during start-up, then freeze it.  A frozen registry is
    read-only and safe to share across threads without locking.
    """

    def __init__(self, rules: Iterable[NormalizationRule] = ()):
        self._rules: list[NormalizationRule] = []
        self._frozen = False
        for rule in rules:
            self.register(rule)

    def register(self, rule: NormalizationRule) -> NormalizationRule:
        """Append `rule`.  No deduplication, no conflict detection."""
        if self._frozen:
            raise RegistryFrozen(
                f"cannot register {rule!r}: registry is frozen"
            )
        self._rules.append(rule)
        logger.debug("registered normalization rule %s", rule.name)
        return rule

    def freeze(self) -> "NormalizerRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def rules(self) -> tuple[NormalizationRule, ...]:
        return tuple(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[NormalizationRule]:
        return iter(tuple(self._rules))

    def normalize_all(self, doc: Document) -> Document:
        """
        Apply every matching rule to `doc`, in registration order.

        Only `doc` itself is offered to the rules; nested documents are
        the business of rules that choose to recurse.  Returns the
        canonical document, which may be `doc` mutated in place.

        Raises NormalizationFailed wrapping the first error raised by a
        rule, from either `applies` or `normalize`.  The state of `doc`
        after a failure is unspecified.
        """
        for rule in self._rules:
            try:
                if not rule.applies(doc):
                    continue
                doc = rule.normalize(doc)
            except Exception as exc:
                logger.warning("normalization rule %s failed: %s", rule.name, exc)
                raise NormalizationFailed(rule.name, exc) from exc
            logger.debug("applied normalization rule %s", rule.name)
        return doc

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"NormalizerRegistry({[r.name for r in self._rules]}, {state})"


def default_registry() -> NormalizerRegistry:
    """
    A fresh, unfrozen registry holding the built-in rules.

    Call once at start-up; register any extra rules before handing the
    registry to a Comparator.
    """
    return NormalizerRegistry([secret_rule()])
