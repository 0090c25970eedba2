# upload/pipe.py
from __future__ import annotations

import threading
from collections import deque
from typing import BinaryIO, Deque, Optional

from ..errors import JobCancelled, StreamingError
from ..ui.console import get_console

DEFAULT_CHUNK_SIZE = 100 * 1024 * 1024  # 100 MiB
# Seconds between cancellation checks while blocked.
WAIT_SECONDS = 0.5


class Pipe:
    """
    Bounded in-memory pipe between one producer thread and one consumer.

    The writer blocks once max_chunks chunks are buffered and not yet read,
    so memory stays around (max_chunks + 1) * chunk size whatever the
    stream length. Closing either end wakes the other one up.
    """

    def __init__(self, max_chunks: int = 1, cancel: Optional[threading.Event] = None):
        if max_chunks < 1:
            raise ValueError("max_chunks must be at least 1")
        self.max_chunks = max_chunks
        self.cancel = cancel
        self.error: Optional[BaseException] = None
        self._chunks: Deque[bytes] = deque()
        self._cond = threading.Condition()
        self._writer_closed = False
        self._reader_closed = False
        self.reader = PipeReader(self)
        self.writer = PipeWriter(self)

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


class PipeWriter:
    def __init__(self, pipe: Pipe):
        self._pipe = pipe

    @property
    def closed(self) -> bool:
        return self._pipe._writer_closed

    def write(self, data: bytes) -> int:
        """Queue data for the reader, blocking while the pipe is full."""
        p = self._pipe
        if not data:
            return 0
        chunk = data if isinstance(data, bytes) else bytes(data)
        with p._cond:
            if p._writer_closed:
                raise ValueError("write to closed pipe")
            while len(p._chunks) >= p.max_chunks and not p._reader_closed:
                if p._cancelled():
                    raise JobCancelled("upload cancelled")
                p._cond.wait(WAIT_SECONDS)
            if p._reader_closed:
                raise BrokenPipeError("pipe reader is closed")
            p._chunks.append(chunk)
            p._cond.notify_all()
        return len(chunk)

    def close(self, error: Optional[BaseException] = None) -> None:
        """Signal end of stream. A non-None error is handed to the reader."""
        p = self._pipe
        with p._cond:
            if error is not None and p.error is None:
                p.error = error
            p._writer_closed = True
            p._cond.notify_all()


class PipeReader:
    """File-like read end, suitable as an http.client request body."""

    def __init__(self, pipe: Pipe):
        self._pipe = pipe
        self._current = memoryview(b"")

    @property
    def closed(self) -> bool:
        return self._pipe._reader_closed

    def _next_chunk(self) -> bool:
        # caller holds the condition
        p = self._pipe
        while not p._chunks:
            if p._writer_closed:
                if p.error is not None:
                    raise StreamingError(f"upload producer failed: {p.error}")
                return False
            if p._reader_closed:
                return False
            if p._cancelled():
                raise JobCancelled("upload cancelled")
            p._cond.wait(WAIT_SECONDS)
        self._current = memoryview(p._chunks.popleft())
        p._cond.notify_all()
        return True

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            parts = []
            while True:
                part = self.read(DEFAULT_CHUNK_SIZE)
                if not part:
                    return b"".join(parts)
                parts.append(part)

        p = self._pipe
        with p._cond:
            if not self._current and not self._next_chunk():
                return b""
            out = bytes(self._current[:size])
            self._current = self._current[size:]
            return out

    def close(self) -> None:
        p = self._pipe
        with p._cond:
            p._reader_closed = True
            p._chunks.clear()
            self._current = memoryview(b"")
            p._cond.notify_all()


def stream(
    file: BinaryIO,
    writer: PipeWriter,
    opening_header: bytes,
    closing_boundary: bytes,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> None:
    """
    Write header, file content in chunk_size blocks, then the closing boundary.

    The writer is always closed, so the reader never blocks forever. Errors
    cannot reach the HTTP caller directly; they are logged and passed to the
    reader through the pipe.
    """
    error: Optional[BaseException] = None
    try:
        writer.write(opening_header)
        while True:
            chunk = file.read(chunk_size)
            if not chunk:
                break
            writer.write(chunk)
        writer.write(closing_boundary)
    except Exception as e:
        error = e
        get_console().print_error(
            "Upload streaming failed",
            f"failed to stream the multipart body: {e}",
        )
    finally:
        writer.close(error)


def start_stream(
    file: BinaryIO,
    pipe: Pipe,
    opening_header: bytes,
    closing_boundary: bytes,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> threading.Thread:
    """Run stream() on a daemon thread feeding pipe.writer."""
    t = threading.Thread(
        target=stream,
        args=(file, pipe.writer, opening_header, closing_boundary, chunk_size),
        name="upload-producer",
        daemon=True,
    )
    t.start()
    return t
