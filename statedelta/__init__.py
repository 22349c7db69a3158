"""
statedelta
==========

Semantic diff for declarative resource state.

    desired  = {"apiVersion": "v1", "kind": "Secret",
                "stringData": {"user": "admin"}}
    observed = {"apiVersion": "v1", "kind": "Secret",
                "data": {"user": "YWRtaW4="}}

    Comparator().compare(desired, observed)   → []

Servers store a different representation than clients submit: write-only
convenience fields are folded into canonical ones, values get encoded.
statedelta normalizes both documents through a registry of rules first,
then walks them in lockstep and reports each field that really diverges:

    Removed       desired has it, observed does not
    Added         observed has it, desired does not
    Changed       same scalar kind, different value
    TypeMismatch  different kinds (e.g. mapping vs string)

An empty difference list means "no update needed".
"""

from statedelta.core import (
    ABSENT,
    DiffKind,
    Difference,
    check_tree,
    diff,
    kind_of,
)
from statedelta.errors import (
    ConfigError,
    DeltaError,
    InvalidFieldType,
    MalformedDocument,
    NormalizationError,
    NormalizationFailed,
    RegistryFrozen,
)
from statedelta.transform import (
    ENCODINGS,
    FieldFoldingRule,
    NormalizationRule,
    NormalizerRegistry,
    default_registry,
    secret_rule,
)
from statedelta.compare import Comparator
from statedelta.formats import (
    differences_to_json,
    differences_to_python,
    from_json,
    from_python,
    from_yaml,
    load_document,
    load_documents,
)

__version__ = "0.1.0"
__all__ = [
    "ABSENT", "DiffKind", "Difference", "check_tree", "diff", "kind_of",
    "DeltaError", "NormalizationError", "InvalidFieldType",
    "NormalizationFailed", "MalformedDocument", "RegistryFrozen", "ConfigError",
    "NormalizationRule", "FieldFoldingRule", "NormalizerRegistry",
    "ENCODINGS", "secret_rule", "default_registry",
    "Comparator",
    "from_python", "from_json", "from_yaml", "load_document", "load_documents",
    "differences_to_python", "differences_to_json",
]
