"""Static HTTP server for the build directory."""

import functools
import logging
import threading
from dataclasses import dataclass
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Union

from assetflow.errors import PipelineIOError
from assetflow.logging_setup import CYAN

logger = logging.getLogger(__name__)


class _QuietHandler(SimpleHTTPRequestHandler):
    """Request handler that logs through ``logging`` at DEBUG."""

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


@dataclass
class ServerHandle:
    """A running server; ``close()`` stops it."""

    server: ThreadingHTTPServer
    thread: threading.Thread

    @property
    def port(self) -> int:
        return self.server.server_address[1]

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"

    def close(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.thread.join()


class HttpStaticServer:
    """Serves a directory over HTTP from a background thread."""

    def __init__(self, host: str = 'localhost'):
        self.host = host

    def listen(self, directory: Union[str, Path], port: int) -> ServerHandle:
        """Start serving ``directory`` on ``port`` (0 picks a free port).

        Raises:
            PipelineIOError: If the port cannot be bound
        """
        handler = functools.partial(_QuietHandler, directory=str(directory))
        try:
            server = ThreadingHTTPServer((self.host, port), handler)
        except OSError as e:
            raise PipelineIOError(f"Cannot listen on port {port}: {e}")
        server.daemon_threads = True

        thread = threading.Thread(target=server.serve_forever, name='assetflow-http', daemon=True)
        thread.start()
        handle = ServerHandle(server=server, thread=thread)
        logger.info("Server listening at %s", handle.url, extra={'color': CYAN})
        return handle
