import io
import threading
import time

import pytest

from cloudbuilder.errors import JobCancelled, StreamingError
from cloudbuilder.upload.pipe import Pipe, WAIT_SECONDS, start_stream, stream


class BrokenFile(io.RawIOBase):
    def read(self, size=-1):
        raise OSError("disk went away")


def read_all(reader, size):
    parts = []
    while True:
        part = reader.read(size)
        if not part:
            return b"".join(parts)
        parts.append(part)


def test_empty_file_streams_header_and_trailer():
    pipe = Pipe()
    producer = start_stream(io.BytesIO(b""), pipe, b"HEAD", b"TAIL", chunk_size=4)

    assert pipe.reader.read() == b"HEADTAIL"
    producer.join(timeout=5)
    assert pipe.error is None


def test_multi_chunk_content_arrives_intact():
    content = bytes(range(256)) * 40 + b"odd"
    pipe = Pipe(max_chunks=2)
    producer = start_stream(io.BytesIO(content), pipe, b"<", b">", chunk_size=1000)

    assert read_all(pipe.reader, 333) == b"<" + content + b">"
    producer.join(timeout=5)
    assert not producer.is_alive()


def test_writer_blocks_while_pipe_is_full():
    pipe = Pipe(max_chunks=1)
    pipe.writer.write(b"first")

    second = threading.Thread(target=pipe.writer.write, args=(b"second",))
    second.start()
    time.sleep(0.2)
    assert second.is_alive()

    assert pipe.reader.read(100) == b"first"
    second.join(timeout=5)
    assert not second.is_alive()
    pipe.writer.close()
    assert pipe.reader.read() == b"second"


def test_closing_reader_unblocks_writer():
    pipe = Pipe(max_chunks=1)
    pipe.writer.write(b"x")
    errors = []

    def write():
        try:
            pipe.writer.write(b"y")
        except BrokenPipeError as e:
            errors.append(e)

    t = threading.Thread(target=write)
    t.start()
    time.sleep(0.1)
    pipe.reader.close()
    t.join(timeout=5)

    assert len(errors) == 1
    assert pipe.reader.read(10) == b""


def test_producer_error_reaches_reader():
    pipe = Pipe()
    producer = start_stream(BrokenFile(), pipe, b"HEAD", b"TAIL")

    with pytest.raises(StreamingError, match="disk went away"):
        pipe.reader.read()
    producer.join(timeout=5)
    assert isinstance(pipe.error, OSError)


def test_writer_is_closed_even_on_error():
    pipe = Pipe()
    pipe.reader.close()
    stream(io.BytesIO(b"data"), pipe.writer, b"HEAD", b"TAIL")

    assert pipe.writer.closed
    assert isinstance(pipe.error, BrokenPipeError)


def test_cancel_unblocks_writer():
    cancel = threading.Event()
    pipe = Pipe(max_chunks=1, cancel=cancel)
    pipe.writer.write(b"x")
    cancel.set()

    with pytest.raises(JobCancelled):
        pipe.writer.write(b"y")


def test_cancel_unblocks_reader():
    cancel = threading.Event()
    pipe = Pipe(cancel=cancel)
    timer = threading.Timer(WAIT_SECONDS / 2, cancel.set)
    timer.start()
    with pytest.raises(JobCancelled):
        pipe.reader.read(10)
    timer.cancel()


def test_write_after_close():
    pipe = Pipe()
    pipe.writer.close()
    with pytest.raises(ValueError):
        pipe.writer.write(b"late")


def test_max_chunks_must_be_positive():
    with pytest.raises(ValueError):
        Pipe(max_chunks=0)
