"""tracking3 multipart - multipart/form-data bodies for file uploads."""

import os
import uuid
from collections.abc import Callable, Mapping
from typing import Any, BinaryIO

CRLF = b"\r\n"

# Characters that would let a field name break out of its header line
DISALLOWED_NAME_CHARS = ("\0", '"', "\r", "\n")

FILE_FIELD_NAME = "file"
DEFAULT_FILENAME = "file"


def generate_boundary() -> str:
    """Return a fresh boundary token. Unique per call, not a secret."""
    return "-" * 21 + uuid.uuid4().hex


def sanitize_name(name: str) -> str:
    """Replace NUL, double quote, CR and LF with an underscore."""
    for char in DISALLOWED_NAME_CHARS:
        name = name.replace(char, "_")
    return name


def _is_container(value: Any) -> bool:
    return isinstance(value, Mapping | list | tuple)


def _items(container: Any):
    if isinstance(container, Mapping):
        return iter(container.items())
    return iter(enumerate(container))


def flatten_fields(fields: Mapping | None) -> dict[str, Any]:
    """Flatten nested mappings and sequences into bracket-notation keys.

    {"a": {"b": 1, "c": [2, 3]}} -> {"a[b]": 1, "a[c][0]": 2, "a[c][1]": 3}

    Keys keep the depth-first order of the input. Uses an explicit stack of
    iterators, so deeply nested input cannot hit the recursion limit.
    """
    flat: dict[str, Any] = {}
    if not fields:
        return flat

    stack: list[tuple[str | None, Any]] = [(None, _items(fields))]
    while stack:
        parent, items = stack[-1]
        for key, value in items:
            item_key = str(key) if parent is None else f"{parent}[{key}]"
            if _is_container(value):
                stack.append((item_key, _items(value)))
                break
            flat[item_key] = value
        else:
            stack.pop()
    return flat


def display_value(value: Any) -> str:
    """String form of a scalar field value as sent on the wire."""
    if value is True:
        return "1"
    if value is False or value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


# ── MIME sniffing ────────────────────────────────────────────────────────

_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
    (b"%!PS", "application/postscript"),
    (b"\x7fELF", "application/x-executable"),
]


_SNIFF_WINDOW = 1024


def sniff_mime_type(data: bytes) -> str:
    """Detect a MIME type from file content.

    Never looks at a filename or a caller-declared type.
    """
    if not data:
        return "application/x-empty"

    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime

    truncated = len(data) > _SNIFF_WINDOW
    head = data[:_SNIFF_WINDOW]
    if head.startswith(b"\xef\xbb\xbf"):
        head = head[3:]
    try:
        text = head.decode("utf-8")
    except UnicodeDecodeError as e:
        # a multibyte sequence cut by the sniff window is still text
        if not truncated or e.start < len(head) - 3:
            return "application/octet-stream"
        text = head[: e.start].decode("utf-8")
    if "\x00" in text:
        return "application/octet-stream"

    stripped = text.lstrip()
    lowered = stripped[:64].lower()
    if lowered.startswith("<?xml"):
        return "text/xml"
    if lowered.startswith(("<!doctype html", "<html")):
        return "text/html"
    if stripped.startswith(("{", "[")):
        return "application/json"
    return "text/plain"


# ── Encoding ─────────────────────────────────────────────────────────────


def read_upload(file: BinaryIO) -> tuple[str, bytes]:
    """Read a caller-owned file handle in full. Returns (filename, data).

    Seekable handles are rewound first. The handle is never closed.
    """
    if file.seekable():
        file.seek(0)
    data = file.read()
    if isinstance(data, str):
        data = data.encode("utf-8")

    name = getattr(file, "name", None)
    filename = os.path.basename(name) if isinstance(name, str) and name else DEFAULT_FILENAME
    return filename, data


def encode_multipart(
    fields: Mapping | None,
    file: BinaryIO,
    boundary: str,
    sniff: Callable[[bytes], str] = sniff_mime_type,
) -> bytes:
    """Encode form fields plus one file as a multipart/form-data body.

    Nested fields are flattened to bracket keys and sent first, in order,
    followed by the file under the "file" field and the closing boundary.
    """
    parts: list[bytes] = []

    for key, value in flatten_fields(fields).items():
        parts.append(
            CRLF.join(
                [
                    f'Content-Disposition: form-data; name="{sanitize_name(key)}"'.encode(),
                    b"",
                    display_value(value).encode("utf-8"),
                ],
            ),
        )

    filename, data = read_upload(file)
    parts.append(
        CRLF.join(
            [
                (
                    f'Content-Disposition: form-data; name="{FILE_FIELD_NAME}"; '
                    f'filename="{sanitize_name(filename)}"'
                ).encode(),
                f"Content-Type: {sniff(data)}".encode(),
                b"",
                data,
            ],
        ),
    )

    delimiter = f"--{boundary}".encode()
    body = [delimiter + CRLF + part for part in parts]
    body.append(delimiter + b"--")
    body.append(b"")
    return CRLF.join(body)


def multipart_content_type(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"
