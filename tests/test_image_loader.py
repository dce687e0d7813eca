import requests

from annotator.services.image_loader import is_remote, load_image

from conftest import make_image


class FakeResponse:
    def __init__(self, content: bytes, status: int = 200):
        self.content = content
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, timeout=None):
        self.requests.append((url, timeout))
        if self.error:
            raise self.error
        return self.response


def _png_bytes(tmp_path) -> bytes:
    path = tmp_path / "remote.png"
    make_image(30, 20).save(str(path), "PNG")
    return path.read_bytes()


def test_is_remote():
    assert is_remote("https://example.com/a.png")
    assert is_remote("http://example.com/a.png")
    assert not is_remote("/tmp/a.png")
    assert not is_remote("file:///tmp/a.png")


def test_loads_local_file(qapp, tmp_path):
    path = tmp_path / "photo.png"
    make_image(64, 32).save(str(path), "PNG")

    image = load_image(str(path))
    assert (image.width(), image.height()) == (64, 32)

    assert not load_image(path.as_uri()).isNull()


def test_missing_file_gives_null_image(qapp, tmp_path):
    assert load_image(str(tmp_path / "nope.png")).isNull()


def test_unreadable_file_gives_null_image(qapp, tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    assert load_image(str(path)).isNull()


def test_remote_image_uses_session_and_timeout(qapp, tmp_path):
    session = FakeSession(FakeResponse(_png_bytes(tmp_path)))

    image = load_image("https://cdn.example.com/photo.png", session=session, timeout=3)

    assert (image.width(), image.height()) == (30, 20)
    assert session.requests == [("https://cdn.example.com/photo.png", 3)]


def test_remote_failures_give_null_image(qapp):
    url = "https://cdn.example.com/photo.png"

    assert load_image(url, session=FakeSession(FakeResponse(b"", status=404))).isNull()
    assert load_image(url, session=FakeSession(error=requests.exceptions.ConnectionError("down"))).isNull()
    assert load_image(url, session=FakeSession(error=requests.exceptions.Timeout())).isNull()
    assert load_image(url, session=FakeSession(FakeResponse(b"<html>"))).isNull()
