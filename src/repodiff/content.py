"""Content identity: normalization, git blob hashing, base64 decoding.

The same :func:`normalize` is applied to local and remote text before
any comparison, so incidental line-ending or trailing-whitespace noise
never shows up as a modification.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from typing import Union

from .exceptions import DecodeError, EncodingError

Content = Union[str, bytes]

_TRAILING_WS = re.compile(r"[ \t]+$", re.MULTILINE)
_TRAILING_NEWLINES = re.compile(r"\n+\Z")
_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize(text: str) -> str:
    """Return the canonical comparison form of *text*.

    CRLF and lone CR become LF, trailing spaces and tabs are stripped
    from every line, and a run of trailing newlines collapses to one.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_WS.sub("", text)
    return _TRAILING_NEWLINES.sub("\n", text)


def is_binary(content: Content) -> bool:
    """True if *content* must be treated as opaque (never line-diffed)."""
    if isinstance(content, bytes):
        return True
    return "\0" in content


def is_placeholder(path: str, content: Content) -> bool:
    """True for directory placeholder entries in a local file set."""
    return path.endswith("/") or len(content) == 0


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def _blob_hasher(size: int) -> hashlib._Hash:
    """Return a SHA-1 hasher pre-loaded with the git blob header.

    Git blob OID = SHA-1(``blob <size>\\0`` + content).
    """
    return hashlib.sha1(f"blob {size}\0".encode())


def encode_utf8(text: str) -> bytes:
    """Encode *text* strictly, raising :class:`EncodingError` on failure."""
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError(f"Cannot encode content as UTF-8: {exc.reason}") from exc


def blob_oid(content: Content) -> str:
    """Compute the git blob object id of *content* as a hex string.

    Text is hashed as its UTF-8 encoding; the header carries the byte
    length, not the character count.  Bytes are hashed as-is.
    """
    data = content if isinstance(content, bytes) else encode_utf8(content)
    h = _blob_hasher(len(data))
    h.update(data)
    return h.hexdigest()


def comparison_oid(content: Content) -> str:
    """Blob id of *content* in comparison form (normalized when text)."""
    if isinstance(content, bytes):
        return blob_oid(content)
    return blob_oid(normalize(content))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_base64_bytes(payload: str | bytes) -> bytes:
    """Decode a base64 payload to raw bytes.

    Embedded whitespace (the contents API wraps lines) is ignored;
    anything else outside the base64 alphabet raises :class:`DecodeError`.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("ascii")
        except UnicodeDecodeError as exc:
            raise DecodeError("Base64 payload contains non-ASCII bytes") from exc
    compact = _WHITESPACE.sub("", payload)
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Malformed base64 payload: {exc}") from exc


def decode_base64(payload: str | bytes) -> str:
    """Decode a base64 payload and interpret the bytes as UTF-8 text."""
    data = decode_base64_bytes(payload)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(
            f"Payload is not valid UTF-8 at byte {exc.start}: {exc.reason}"
        ) from exc
