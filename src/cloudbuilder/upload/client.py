# upload/client.py
from __future__ import annotations

import http.client
import mimetypes
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlsplit
from uuid import UUID

from ..config import Credentials
from ..errors import StreamingError, UploadError
from ..model import is_nil
from ..ui.console import get_console
from .multipart import encode_multipart
from .pipe import DEFAULT_CHUNK_SIZE, Pipe, start_stream

DEFAULT_MIME = "application/octet-stream"


@dataclass
class UploadDescriptor:
    """Everything needed to store one local file against an API entity."""
    entity_id: Optional[UUID]
    file_type: str
    mime_type: str
    target: str
    platform: str
    local_path: Path
    original_path: str
    extra_params: Dict[str, str] = field(default_factory=dict)


def guess_mime(path: str | Path) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    return mime or DEFAULT_MIME


class Uploader:
    """
    Streams files to PUT /entities/{id}/files/upload as multipart/form-data.

    The body is produced by a background thread through a bounded Pipe, so
    files of any size are sent without being loaded into memory.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_chunks: int = 1,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.chunk_size = chunk_size
        self.max_chunks = max_chunks
        self.timeout = timeout

    def upload_url(self, d: UploadDescriptor) -> str:
        query = urlencode({
            "type": d.file_type,
            "mime": d.mime_type,
            "deployment": d.target,
            "platform": d.platform,
            "original-path": d.original_path,
        })
        return f"{self.base_url}/entities/{d.entity_id}/files/upload?{query}"

    def upload(self, d: UploadDescriptor, cancel: Optional[threading.Event] = None) -> None:
        """
        Upload one file.

        Raises:
            UploadError: Invalid entity id, unreadable file, network failure or a >= 400 response
            StreamingError: The body producer failed while the request was running
        """
        if is_nil(d.entity_id):
            raise UploadError("invalid job entity id")

        url = self.upload_url(d)
        path = Path(d.local_path)

        try:
            f = path.open("rb")
        except OSError as e:
            raise UploadError(f"failed to open file {path}: {e}") from e

        with f:
            try:
                size = os.fstat(f.fileno()).st_size
            except OSError as e:
                raise UploadError(f"failed to stat file {path}: {e}") from e

            # the file must not change size from here on; Content-Length is fixed
            envelope = encode_multipart(d.extra_params, path.name, size)
            get_console().print_upload(d.original_path, size)

            pipe = Pipe(self.max_chunks, cancel)
            producer = start_stream(
                f, pipe, envelope.opening_header, envelope.closing_boundary, self.chunk_size
            )

            headers = {
                "Content-Type": envelope.content_type,
                "Content-Length": str(envelope.declared_content_length),
                "Accept": "application/json",
            }
            headers.update(self.credentials.authorization())

            try:
                status, body = self._put(url, headers, pipe.reader)
            except (OSError, http.client.HTTPException) as e:
                raise UploadError(f"failed to send upload request: {e}") from e
            finally:
                pipe.reader.close()
                producer.join()

        if status >= 400:
            raise UploadError(
                f"failed to upload a file, status code: {status}, "
                f"content: {body.decode('utf-8', errors='replace')}"
            )
        if pipe.error is not None:
            raise StreamingError(f"upload body was not fully streamed: {pipe.error}") from pipe.error

    def _put(self, url: str, headers: Mapping[str, str], body: BinaryIO) -> Tuple[int, bytes]:
        """
        Send a PUT with a streamed body and return (status, response body).

        A server may answer and close before it has read the whole body, for
        example on an expired token. When sending fails after the headers went
        out, the response is still read so the caller sees the server's status.
        """
        parts = urlsplit(url)
        conn_cls = http.client.HTTPSConnection if parts.scheme == "https" else http.client.HTTPConnection
        conn = conn_cls(parts.hostname, parts.port, timeout=self.timeout)
        target = parts.path or "/"
        if parts.query:
            target += "?" + parts.query

        try:
            conn.putrequest("PUT", target, skip_accept_encoding=True)
            for name, value in headers.items():
                conn.putheader(name, value)
            conn.endheaders()

            send_error: Optional[OSError] = None
            try:
                while True:
                    chunk = body.read(conn.blocksize)
                    if not chunk:
                        break
                    conn.send(chunk)
            except OSError as e:
                send_error = e

            try:
                response = conn.getresponse()
                return response.status, response.read()
            except (OSError, http.client.HTTPException) as e:
                if send_error is not None:
                    raise send_error from e
                raise
        finally:
            conn.close()
