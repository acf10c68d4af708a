"""
Tests for asset_server.py — static files plus single-page-app fallback,
exercised over real loopback HTTP.
"""

import socket

import pytest
import requests

from prerender.asset_server import AssetServer
from prerender.errors import AssetServerError

SHELL = "<!DOCTYPE html><html><head><style prerender></style></head><body><div id=root></div></body></html>"


@pytest.fixture
def build_dir(tmp_path):
    (tmp_path / "index.html").write_text(SHELL, encoding="utf-8")
    (tmp_path / "static" / "js").mkdir(parents=True)
    (tmp_path / "static" / "js" / "main.js").write_text("console.log('app')", encoding="utf-8")
    return tmp_path


@pytest.fixture
def server(build_dir):
    srv = AssetServer(build_dir, port=0)
    srv.start()
    yield srv
    srv.close()


class TestAssetServer:

    def test_base_url_uses_bound_port(self, server):
        assert server.port != 0
        assert server.base_url == f"http://localhost:{server.port}"

    def test_serves_static_file(self, server):
        resp = requests.get(f"{server.base_url}/static/js/main.js", timeout=5)
        assert resp.status_code == 200
        assert resp.text == "console.log('app')"

    def test_root_serves_shell(self, server):
        resp = requests.get(f"{server.base_url}/", timeout=5)
        assert resp.status_code == 200
        assert resp.text == SHELL

    @pytest.mark.parametrize("path", ["/about", "/products/42", "/route/en/widget", "/static"])
    def test_unknown_paths_fall_back_to_shell(self, server, path):
        resp = requests.get(f"{server.base_url}{path}", timeout=5)
        assert resp.status_code == 200
        assert resp.text == SHELL
        assert resp.headers["Content-Type"].startswith("text/html")

    def test_shell_fixed_at_startup(self, server, build_dir):
        """The root snapshot overwriting index.html must not change the fallback."""
        (build_dir / "index.html").write_text("<html>snapshot</html>", encoding="utf-8")
        resp = requests.get(f"{server.base_url}/about", timeout=5)
        assert resp.text == SHELL

    def test_head_request(self, server):
        resp = requests.head(f"{server.base_url}/about", timeout=5)
        assert resp.status_code == 200
        assert int(resp.headers["Content-Length"]) == len(SHELL.encode("utf-8"))

    def test_context_manager(self, build_dir):
        with AssetServer(build_dir, port=0) as srv:
            assert requests.get(f"{srv.base_url}/x", timeout=5).text == SHELL


class TestAssetServerErrors:

    def test_missing_shell(self, tmp_path):
        with pytest.raises(AssetServerError):
            AssetServer(tmp_path / "no-build", port=0).start()

    def test_port_in_use(self, build_dir):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            port = blocker.getsockname()[1]
            with pytest.raises(AssetServerError):
                AssetServer(build_dir, port=port).start()
        finally:
            blocker.close()
