"""
Logging bootstrap for statedelta.

The library only creates module loggers under the `statedelta`
namespace; it never configures handlers on import.  Embedding systems
that want statedelta's output call setup_logging() once at start-up.

- One stream handler on the `statedelta` logger (re-running replaces it)
- UTC timestamps in ISO-8601
- Secret redaction: Secret payload fields, passwords and tokens are
  masked in the rendered message
"""

from __future__ import annotations

import logging
import re
import sys
import time
from typing import IO, Optional

from .config import DeltaConfig

LOGGER_NAME = "statedelta"

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class MaskSecretsFilter(logging.Filter):
    """
    Redact secret material from log records.
    """

    _patterns = [
        re.compile(r"(Authorization:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"""(['"]?\b(?:stringData|data)['"]?\s*[=:]\s*)(\{[^}]*\})"""),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        # Mask the rendered message: a secret may sit inside a nested arg
        record.msg = self._mask(record.getMessage())
        record.args = ()
        return True


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def setup_logging(
    level: str = "INFO",
    stream: Optional[IO[str]] = None,
    mask_secrets: bool = True,
) -> logging.Logger:
    """
    Configure and return the `statedelta` logger.

    Exactly one stream handler is attached, so calling this again (for
    example between tests, where pytest swaps stdio) rebinds it instead
    of stacking duplicates.
    """
    base = logging.getLogger(LOGGER_NAME)
    base.setLevel(getattr(logging, level.upper(), logging.INFO))

    for h in list(base.handlers):
        if getattr(h, "_statedelta", False):
            base.removeHandler(h)
            h.close()

    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.setFormatter(_utc_formatter(_FORMAT))
    if mask_secrets:
        handler.addFilter(MaskSecretsFilter())
    handler._statedelta = True  # type: ignore[attr-defined]
    base.addHandler(handler)
    return base


def setup_from_config(cfg: DeltaConfig, stream: Optional[IO[str]] = None) -> logging.Logger:
    """setup_logging() driven by the `logging` section of a DeltaConfig."""
    return setup_logging(
        level=cfg.logging.level,
        stream=stream,
        mask_secrets=cfg.logging.mask_secrets,
    )
