# upload/multipart.py
from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Mapping, Optional

CRLF = b"\r\n"
FILE_FIELD = "file"


@dataclass(frozen=True)
class MultipartEnvelope:
    """
    The bytes that surround a single streamed file in a multipart/form-data body.

    opening_header + <file bytes> + closing_boundary is the complete body.
    """
    content_type: str
    opening_header: bytes
    closing_boundary: bytes
    declared_content_length: int


def random_boundary() -> str:
    """30 random bytes as hex, the same shape Go and most browsers use."""
    return secrets.token_hex(30)


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _part_header(boundary: str, first: bool, disposition: str, content_type: str | None = None) -> bytes:
    lines = []
    delimiter = b"--" + boundary.encode("ascii") + CRLF
    lines.append(delimiter if first else CRLF + delimiter)
    lines.append(f"Content-Disposition: {disposition}".encode("utf-8") + CRLF)
    if content_type:
        lines.append(f"Content-Type: {content_type}".encode("utf-8") + CRLF)
    lines.append(CRLF)
    return b"".join(lines)


def encode_multipart(
    fields: Optional[Mapping[str, str]],
    filename: str,
    file_size: int,
    boundary: Optional[str] = None,
) -> MultipartEnvelope:
    """
    Build the header and trailer of a multipart/form-data body around one file.

    The file content is never read: only its name goes into the header and
    its size into the declared content length.

    Args:
        fields: Plain string form fields, written before the file part
        filename: Name reported for the "file" field
        file_size: Size of the file in bytes
        boundary: Boundary to use (random when omitted)

    Returns:
        MultipartEnvelope
    """
    if file_size < 0:
        raise ValueError(f"file size must not be negative: {file_size}")

    boundary = boundary or random_boundary()
    header = bytearray()
    first = True

    for key, value in (fields or {}).items():
        header += _part_header(boundary, first, f'form-data; name="{_quote(key)}"')
        header += value.encode("utf-8")
        first = False

    header += _part_header(
        boundary,
        first,
        f'form-data; name="{FILE_FIELD}"; filename="{_quote(filename)}"',
        "application/octet-stream",
    )

    closing = CRLF + b"--" + boundary.encode("ascii") + b"--" + CRLF
    opening = bytes(header)

    return MultipartEnvelope(
        content_type=f"multipart/form-data; boundary={boundary}",
        opening_header=opening,
        closing_boundary=closing,
        declared_content_length=len(opening) + file_size + len(closing),
    )
