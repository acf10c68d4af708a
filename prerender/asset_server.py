"""
Asset Server
============
Throwaway loopback HTTP server for the built SPA.

Files under the build directory are served as-is; any other path gets the
app shell (``index.html``) so client-side routing can take over.  The shell
is read once at startup: the root snapshot later overwrites ``index.html``
on disk, and lanes still booting must keep receiving the original shell.
"""

from __future__ import annotations

import logging
import os
import socket
import socketserver
import threading
from functools import partial
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional, Union

from .errors import AssetServerError

logger = logging.getLogger(__name__)

SHELL_DOCUMENT = "index.html"
_LOOPBACK = "127.0.0.1"


class _AssetHttpServer(ThreadingHTTPServer):
    daemon_threads = True
    shell: bytes = b""

    def server_bind(self):
        # Skip the getfqdn() lookup done by HTTPServer.server_bind()
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = "localhost" if host == _LOOPBACK else socket.getfqdn(host)
        self.server_port = port


class _AssetRequestHandler(SimpleHTTPRequestHandler):
    server: _AssetHttpServer

    def send_head(self):
        path = self.translate_path(self.path)
        if os.path.isfile(path):
            return super().send_head()
        if os.path.isdir(path) and os.path.isfile(os.path.join(path, SHELL_DOCUMENT)):
            # Directory index: redirect/serve exactly like a static server
            if os.path.normpath(path) != os.path.normpath(self.directory):
                return super().send_head()
        return self._send_shell()

    def _send_shell(self):
        body = self.server.shell
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)
        return None

    def log_message(self, format, *args):
        logger.debug(f"[SERVER] {self.address_string()} {format % args}")


class AssetServer:
    """
    Usage::

        server = AssetServer("./build", port=3000)
        base_url = server.start()      # "http://localhost:3000"
        ...
        server.close()
    """

    def __init__(self, directory: Union[str, Path], port: int = 3000, host: str = _LOOPBACK):
        self.directory = Path(directory).resolve()
        self.port = port
        self.host = host
        self._server: Optional[_AssetHttpServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.port}"

    def start(self) -> str:
        """
        Bind and serve in a background thread.

        Returns:
            Base URL of the server

        Raises:
            AssetServerError: missing app shell or port bind failure
        """
        shell_path = self.directory / SHELL_DOCUMENT
        try:
            shell = shell_path.read_bytes()
        except OSError as e:
            raise AssetServerError(
                f"Failed to read app shell {shell_path}. Message: {e}"
            ) from e

        handler = partial(_AssetRequestHandler, directory=str(self.directory))
        try:
            server = _AssetHttpServer((self.host, self.port), handler)
        except OSError as e:
            raise AssetServerError(
                f"Failed to run static server on port {self.port}. Message: {e}"
            ) from e
        server.shell = shell
        # Port 0 asks the OS for a free port
        self.port = server.server_port
        self._server = server

        self._thread = threading.Thread(
            target=server.serve_forever, name="prerender-assets", daemon=True
        )
        self._thread.start()
        logger.info(f"Serving {self.directory} at {self.base_url}")
        return self.base_url

    def close(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def __enter__(self) -> "AssetServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
