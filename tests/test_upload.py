import socket
import threading
import uuid

import pytest

from cloudbuilder.errors import UploadError
from cloudbuilder.upload.client import UploadDescriptor, Uploader, guess_mime

ENTITY = uuid.UUID("6f1c1d7e-3f7a-4a47-9c0e-2d8f8a9b1c01")


def descriptor(path, entity_id=ENTITY, original_path="Game/Binaries/game.pak"):
    return UploadDescriptor(
        entity_id=entity_id,
        file_type="release-file",
        mime_type="application/octet-stream",
        target="client",
        platform="Win64",
        local_path=path,
        original_path=original_path,
    )


def upload_path():
    return f"/entities/{ENTITY}/files/upload"


def test_streams_multipart_body(fake_api, credentials, tmp_path):
    content = bytes(range(256)) * 40 + b"tail"
    path = tmp_path / "game.pak"
    path.write_bytes(content)
    fake_api.respond("PUT", upload_path(), 200, {"status": "ok"})

    Uploader(fake_api.base_url, credentials, chunk_size=1000).upload(descriptor(path))

    [req] = fake_api.requests_to("PUT", upload_path())
    assert req.query == {
        "type": "release-file",
        "mime": "application/octet-stream",
        "deployment": "client",
        "platform": "Win64",
        "original-path": "Game/Binaries/game.pak",
    }
    assert req.headers["Authorization"] == "Bearer tok"
    assert int(req.headers["Content-Length"]) == len(req.body)

    content_type = req.headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    boundary = content_type.split("boundary=", 1)[1].encode("ascii")

    body = req.body
    assert body.startswith(b"--" + boundary + b"\r\n")
    assert body.endswith(b"\r\n--" + boundary + b"--\r\n")
    assert b'name="file"; filename="game.pak"' in body
    header_end = body.index(b"\r\n\r\n") + 4
    assert body[header_end:-len(b"\r\n--" + boundary + b"--\r\n")] == content


def test_empty_file(fake_api, credentials, tmp_path):
    path = tmp_path / "empty.txt"
    path.write_bytes(b"")
    fake_api.respond("PUT", upload_path(), 200, {"status": "ok"})

    Uploader(fake_api.base_url, credentials).upload(descriptor(path))

    [req] = fake_api.requests_to("PUT", upload_path())
    assert int(req.headers["Content-Length"]) == len(req.body)


def test_rejected_upload(fake_api, credentials, tmp_path):
    path = tmp_path / "game.pak"
    path.write_bytes(b"data")
    fake_api.respond("PUT", upload_path(), 400, {"status": "error", "message": "bad file type"})

    with pytest.raises(UploadError) as exc:
        Uploader(fake_api.base_url, credentials).upload(descriptor(path))

    assert "status code: 400" in str(exc.value)
    assert "bad file type" in str(exc.value)


def reject_without_reading_body(listener, status_line, payload):
    conn, _ = listener.accept()
    with conn:
        head = b""
        while b"\r\n\r\n" not in head:
            data = conn.recv(4096)
            if not data:
                return
            head += data
        conn.sendall(
            status_line + b"\r\n"
            b"Content-Type: application/json\r\n"
            + b"Content-Length: " + str(len(payload)).encode("ascii") + b"\r\n"
            b"Connection: close\r\n\r\n" + payload
        )


def test_rejection_before_body_is_read(credentials, tmp_path):
    path = tmp_path / "big.pak"
    path.write_bytes(b"\0" * (16 * 1024 * 1024))

    with socket.socket() as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        server = threading.Thread(
            target=reject_without_reading_body,
            args=(listener, b"HTTP/1.1 401 Unauthorized", b'{"message": "token expired"}'),
            daemon=True,
        )
        server.start()

        with pytest.raises(UploadError) as exc:
            Uploader(f"http://127.0.0.1:{port}", credentials, timeout=10).upload(descriptor(path))
        server.join(timeout=10)

    assert "status code: 401" in str(exc.value)
    assert "token expired" in str(exc.value)


@pytest.mark.parametrize("entity_id", [None, uuid.UUID(int=0)])
def test_nil_entity_fails_before_any_request(fake_api, credentials, tmp_path, entity_id):
    path = tmp_path / "game.pak"
    path.write_bytes(b"data")

    with pytest.raises(UploadError, match="invalid job entity id"):
        Uploader(fake_api.base_url, credentials).upload(descriptor(path, entity_id=entity_id))

    assert fake_api.requests == []


def test_missing_file(fake_api, credentials, tmp_path):
    with pytest.raises(UploadError, match="failed to open file"):
        Uploader(fake_api.base_url, credentials).upload(descriptor(tmp_path / "nope.pak"))
    assert fake_api.requests == []


def test_upload_url_encodes_query(credentials, tmp_path):
    url = Uploader("https://api.example.com/", credentials).upload_url(
        descriptor(tmp_path / "x", original_path="My Game/file&name.pak")
    )
    assert url.startswith(f"https://api.example.com/entities/{ENTITY}/files/upload?")
    assert "original-path=My+Game%2Ffile%26name.pak" in url


def test_guess_mime():
    assert guess_mime("manifest.json") == "application/json"
    assert guess_mime("Game.cbunknownext") == "application/octet-stream"
