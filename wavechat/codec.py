"""CBOR encoding for stored documents (snapshots and the dashboard cache)."""

from __future__ import annotations

from typing import Any

import cbor2


def encode_doc(doc: dict[str, Any]) -> bytes:
    if not isinstance(doc, dict):
        raise TypeError("document must be a map")
    return cbor2.dumps(doc)


def decode_doc(blob: bytes) -> dict[str, Any]:
    """Decode a stored document. Raises ValueError if it is not a CBOR map."""
    doc = cbor2.loads(blob)
    if not isinstance(doc, dict):
        raise ValueError(f"stored document is a {type(doc).__name__}, not a map")
    return doc
