"""
Multipart/form-data decoding over raw request bytes.

File bodies are kept as exact byte slices of the request; only header blocks
and plain field values are decoded to text.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional


CRLF = b"\r\n"
HEADER_END = b"\r\n\r\n"

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)
_PARAM_RE = re.compile(r'(\w+)=(?:"((?:[^"\\]|\\.)*)"|([^;\s]*))')


@dataclass
class UploadedFile:
    field_name: str
    filename: str
    content_type: str
    data: bytes


@dataclass
class MultipartForm:
    fields: Dict[str, str] = field(default_factory=dict)
    files: List[UploadedFile] = field(default_factory=list)


def get_boundary(content_type: str) -> Optional[str]:
    """Return the boundary parameter of a multipart Content-Type header, or None."""
    match = _BOUNDARY_RE.search(content_type or "")
    if not match:
        return None
    return match.group(1) or match.group(2)


def _parse_headers(block: bytes) -> Dict[str, str]:
    headers = {}
    # Header values are usually ASCII; browsers send UTF-8 filenames raw
    text = block.decode("utf-8", errors="replace")
    for line in text.split("\r\n"):
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        headers[name.strip().lower()] = value.strip()
    return headers


def _disposition_params(value: str) -> Dict[str, str]:
    params = {}
    for match in _PARAM_RE.finditer(value):
        key = match.group(1).lower()
        if match.group(2) is not None:
            params[key] = match.group(2).replace('\\"', '"')
        else:
            params[key] = match.group(3)
    return params


def _basename(filename: str) -> str:
    # Some browsers send the full client path
    return re.split(r"[\\/]", filename)[-1]


def parse_multipart(body: bytes, content_type: str) -> MultipartForm:
    """
    Split a multipart/form-data body into text fields and uploaded files.

    Each part is the byte range between "\\r\\n--<boundary>" delimiters; its
    header block ends at the first blank line. Parts carrying a non-empty
    filename attribute are files, everything else is a field.

    Args:
        body: Raw request body
        content_type: Request Content-Type header (must include boundary)

    Returns:
        MultipartForm with fields (name -> text) and files (in request order)

    Raises:
        ValueError: if the Content-Type has no boundary parameter
    """
    boundary = get_boundary(content_type)
    if not boundary:
        raise ValueError("multipart request is missing a boundary parameter")

    delimiter = b"--" + boundary.encode("latin-1")
    form = MultipartForm()

    # The first delimiter may sit at offset 0 (no preamble CRLF)
    if body.startswith(delimiter):
        pos = 0
    else:
        pos = body.find(CRLF + delimiter)
        if pos == -1:
            return form
        pos += len(CRLF)

    next_delimiter = CRLF + delimiter
    while True:
        pos += len(delimiter)
        if body[pos:pos + 2] == b"--":
            break  # closing delimiter
        # Skip transport padding and the line break after the delimiter
        line_end = body.find(CRLF, pos)
        if line_end == -1:
            break
        part_start = line_end + len(CRLF)

        part_end = body.find(next_delimiter, part_start)
        if part_end == -1:
            break  # truncated body, ignore the unterminated part

        _add_part(form, body[part_start:part_end])
        pos = part_end + len(CRLF)

    return form


def _add_part(form: MultipartForm, part: bytes) -> None:
    if part.startswith(CRLF):
        # No headers at all
        return
    header_end = part.find(HEADER_END)
    if header_end == -1:
        return

    headers = _parse_headers(part[:header_end])
    content = part[header_end + len(HEADER_END):]

    params = _disposition_params(headers.get("content-disposition", ""))
    name = params.get("name")
    if not name:
        return

    filename = params.get("filename")
    if filename:
        form.files.append(
            UploadedFile(
                field_name=name,
                filename=_basename(filename),
                content_type=headers.get("content-type", "application/octet-stream"),
                data=content,
            )
        )
    else:
        form.fields[name] = content.decode("utf-8", errors="replace")
