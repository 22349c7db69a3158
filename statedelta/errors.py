"""
statedelta.errors — Exception hierarchy.

Every error raised by the package derives from DeltaError, so a
reconciler can treat "could not decide" uniformly while still telling
malformed input apart from a misbehaving normalization rule.
"""

from typing import Any, Optional


class DeltaError(Exception):
    """Base exception for all statedelta errors."""


class NormalizationError(DeltaError):
    """Base for failures raised by a normalization rule itself."""


class InvalidFieldType(NormalizationError):
    """
    A rule found a value of the wrong shape for its encoding.

    Non-retryable: the document is malformed and must not be compared.
    """

    def __init__(self, field: str, key: Optional[str], value: Any, expected: str):
        self.field = field
        self.key = key
        self.value = value
        self.expected = expected
        where = f"{field}[{key!r}]" if key is not None else field
        super().__init__(
            f"{where} must be {expected}, got {type(value).__name__}"
        )


class NormalizationFailed(DeltaError):
    """
    A registered rule failed while normalizing a document.

    Attributes:
        rule:  Name of the rule that raised.
        side:  "desired" or "observed" when raised from a comparison,
               None when raised directly by the registry.
        cause: The original rule-level exception.
    """

    def __init__(self, rule: str, cause: BaseException, side: Optional[str] = None):
        self.rule = rule
        self.side = side
        self.cause = cause
        prefix = f"{side} document: " if side else ""
        super().__init__(f"{prefix}normalization rule {rule!r} failed: {cause}")


class MalformedDocument(DeltaError):
    """A node in the document tree is not a valid Document value."""

    def __init__(self, path: tuple, reason: str):
        self.path = path
        self.reason = reason
        path_str = "/".join(str(p) for p in path) or "(root)"
        super().__init__(f"malformed document at {path_str}: {reason}")


class RegistryFrozen(DeltaError):
    """A rule was registered after the registry left its configuration phase."""


class ConfigError(DeltaError, ValueError):
    """Invalid statedelta configuration."""
