"""Encoding helpers for data crossing the module boundary.

Binary payloads are bridged to text with one code unit per byte (latin-1),
which is lossless in both directions.
"""

import base64
import binascii
from collections.abc import Iterable
from typing import Any
from urllib.parse import unquote_to_bytes

BRIDGE_ENCODING = "latin-1"


class InvalidDataURLError(ValueError):
    """Data URL is not well formed."""
    pass


def to_list(value: Any) -> list:
    """Normalize None, a scalar or an iterable to a list."""
    if value is None:
        return []
    if isinstance(value, (str, bytes)):
        return [value]
    if isinstance(value, Iterable):
        return list(value)
    return [value]


def bytes_to_str(data: bytes) -> str:
    """Map each byte to the code point of the same value."""
    return bytes(data).decode(BRIDGE_ENCODING)


def str_to_bytes(text: str) -> bytes:
    """Inverse of bytes_to_str. Code points above 0xFF are rejected."""
    return text.encode(BRIDGE_ENCODING)


def data_url_to_bytes(url: str) -> bytes:
    """Decode the payload of a ``data:`` URL.

    Supports ``data:[<mediatype>][;base64],<payload>``. Payloads without the
    base64 marker are percent-decoded.
    """
    if not isinstance(url, str) or not url.startswith("data:"):
        raise InvalidDataURLError("Data URL must start with 'data:'")

    header, sep, payload = url[5:].partition(",")
    if not sep:
        raise InvalidDataURLError("Data URL has no payload separator")

    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidDataURLError(f"Invalid base64 payload: {e}") from e

    return unquote_to_bytes(payload)
