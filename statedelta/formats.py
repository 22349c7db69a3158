"""
statedelta.formats — Decode manifests into Documents, encode results.

Supported conversions:
    • Python objects from any decoder → Document (validated)
    • JSON / YAML text → Document(s)
    • Difference lists → plain Python / canonical JSON
"""

import base64
import datetime
import json
from typing import Any, Iterable

import yaml

from .core import Difference, Document, check_tree
from .errors import MalformedDocument


# ═══════════════════════════════════════════════════════════════════
#  PYTHON OBJECTS → DOCUMENTS
# ═══════════════════════════════════════════════════════════════════

def from_python(obj: Any, path: tuple = ()) -> Document:
    """
    Convert a decoded Python object into a plain Document.

    Mapping:
        str / int / float / bool / None → unchanged
        list / tuple                    → list
        dict (str keys)                 → dict
        date / datetime                 → ISO-8601 string
        bytes                           → base64 string

    YAML decodes unquoted timestamps and !!binary scalars into date and
    bytes objects; they are turned back into the strings the server
    would store.  Non-string mapping keys are rejected rather than
    stringified: YAML 1.1 reads an unquoted `on:` as True, and no
    rendering of True gets back "on".  Anything else raises
    MalformedDocument.
    """
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, (list, tuple)):
        return [from_python(item, path + (i,)) for i, item in enumerate(obj)]
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if not isinstance(k, str):
                raise MalformedDocument(
                    path, f"mapping key {k!r} is not a string (quote it in YAML)"
                )
            out[k] = from_python(v, path + (k,))
        return out
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return base64.b64encode(obj).decode("ascii")
    raise MalformedDocument(path, f"cannot represent {type(obj).__name__} as a document")


def check_document(doc: Document) -> Document:
    """Validate `doc` as a Document and return it unchanged."""
    check_tree(doc)
    return doc


# ═══════════════════════════════════════════════════════════════════
#  TEXT → DOCUMENTS
# ═══════════════════════════════════════════════════════════════════

def from_json(text: str) -> Document:
    """Parse a JSON string into a Document."""
    return check_document(from_python(json.loads(text)))


def from_yaml(text: str) -> Document:
    """Parse a single YAML document."""
    return check_document(from_python(yaml.safe_load(text)))


def load_document(text: str, fmt: str = "yaml") -> Document:
    """Parse `text` as `fmt` ("yaml" or "json")."""
    if fmt == "yaml":
        return from_yaml(text)
    if fmt == "json":
        return from_json(text)
    raise ValueError(f"unsupported document format: {fmt!r}")


def load_documents(text: str) -> list[Document]:
    """
    Parse a multi-document YAML stream (`---` separated).

    Empty documents in the stream are skipped.
    """
    return [
        check_document(from_python(doc))
        for doc in yaml.safe_load_all(text)
        if doc is not None
    ]


# ═══════════════════════════════════════════════════════════════════
#  DIFFERENCES → OUTPUT
# ═══════════════════════════════════════════════════════════════════

def differences_to_python(differences: Iterable[Difference]) -> list[dict]:
    """Convert differences to plain dicts, preserving order."""
    return [d.to_python() for d in differences]


def differences_to_json(differences: Iterable[Difference], **kwargs) -> str:
    """
    Canonical JSON for a difference list.

    Keys are sorted and separators are compact unless overridden, so
    the same comparison always serializes to the same bytes.
    """
    kwargs.setdefault("sort_keys", True)
    kwargs.setdefault("separators", (",", ":"))
    kwargs.setdefault("ensure_ascii", False)
    return json.dumps(differences_to_python(differences), **kwargs)
