"""Tests for the static HTTP server."""

import urllib.error
import urllib.request

import pytest

from assetflow.errors import PipelineIOError
from assetflow.tools.serve import HttpStaticServer


@pytest.fixture
def handle(tmp_path):
    (tmp_path / 'index.html').write_text('<h1>built</h1>')
    handle = HttpStaticServer().listen(tmp_path, 0)
    yield handle
    handle.close()


class TestHttpStaticServer:
    """Tests for HttpStaticServer."""

    def test_serves_files(self, handle):
        with urllib.request.urlopen(f"{handle.url}/index.html", timeout=5) as response:
            assert response.status == 200
            assert response.read() == b'<h1>built</h1>'

    def test_missing_file(self, handle):
        with pytest.raises(urllib.error.HTTPError) as exc_info:
            urllib.request.urlopen(f"{handle.url}/nope.js", timeout=5)
        assert exc_info.value.code == 404

    def test_free_port_assigned(self, handle):
        assert handle.port > 0

    def test_port_in_use(self, handle, tmp_path):
        with pytest.raises(PipelineIOError, match=f"Cannot listen on port {handle.port}"):
            HttpStaticServer().listen(tmp_path, handle.port)
