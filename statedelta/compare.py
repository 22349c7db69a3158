"""
statedelta.compare — Normalize-then-diff entry point.

    comparator = Comparator(default_registry())
    differences = comparator.compare(desired, observed)
    if differences:
        ...  # drifted: the reconciler decides what to do

An empty list is the only "no update needed" answer.  Any error aborts
the comparison; no partial difference list is ever returned.
"""

import copy
import logging
from typing import Optional

from .core import Document, Difference, check_tree, diff
from .errors import NormalizationFailed
from .transform import NormalizerRegistry, default_registry

logger = logging.getLogger(__name__)

DESIRED = "desired"
OBSERVED = "observed"


class Comparator:
    """
    Compares desired and observed documents after normalizing both.

    The registry is frozen on construction: rules are configuration,
    and no rule may be added while comparisons run.  A Comparator keeps
    no per-call state, so one instance can serve many threads.
    """

    def __init__(self, registry: Optional[NormalizerRegistry] = None):
        if registry is None:
            registry = default_registry()
        self.registry = registry.freeze()

    def normalize(self, doc: Document, side: Optional[str] = None) -> Document:
        """Return a normalized deep copy of `doc`; `doc` is left untouched."""
        check_tree(doc)
        try:
            return self.registry.normalize_all(copy.deepcopy(doc))
        except NormalizationFailed as exc:
            if side is None:
                raise
            raise NormalizationFailed(exc.rule, exc.cause, side=side) from exc.cause

    def compare(self, desired: Document, observed: Document) -> list[Difference]:
        """
        Return every difference between `desired` and `observed`.

        Raises:
            NormalizationFailed: a rule rejected one of the documents;
                `side` says which.
            MalformedDocument: a node is not a valid Document value.
        """
        canonical_desired = self.normalize(desired, side=DESIRED)
        canonical_observed = self.normalize(observed, side=OBSERVED)

        differences = diff(canonical_desired, canonical_observed)

        logger.debug("compare: %d difference(s)", len(differences))
        for d in differences:
            # values may carry secret material; log only where and what kind
            logger.debug("  %s at %s", d.kind.value, d.dotted_path)
        return differences

    def equivalent(self, desired: Document, observed: Document) -> bool:
        """True when `observed` already matches `desired`."""
        return not self.compare(desired, observed)
