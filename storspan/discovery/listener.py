"""HTTP listener for the reports sent back by job tasks.

Each map task runs::

    echo "$MANTA_INPUT_OBJECT" | \\
        curl -T- http://<address>:<port>/<namespace>/"$(mdata-get sdc:server_uuid)"

so every report is a ``PUT /<namespace>/<node id>`` whose body is the path of
the marker object the task was given.  A well-formed report is answered with
``204`` before it is applied to the correlation table; whether it resolves a
probe, is a duplicate, or is stale is the engine's business, never the
caller's.

Rejections:
    405  any method other than PUT
    400  path that is not exactly ``/<namespace>/<node id>``
    413  body larger than ``max_report_bytes``
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.background import BackgroundTask

from storspan.discovery.errors import DiscoveryError

if TYPE_CHECKING:
    from storspan.discovery.state import DiscoveryState

logger = logging.getLogger(__name__)

REPORT_METHOD = "PUT"
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

# Wildcard listen addresses
ANY_HOST = "::"
ANY_HOST_V4 = "0.0.0.0"

# Poll interval while waiting for uvicorn to come up (seconds)
STARTUP_POLL = 0.01


def _bad_request(detail: str = "bad request", status_code: int = 400) -> Response:
    return PlainTextResponse(f"{detail}\n", status_code=status_code)


def create_app(
    state: DiscoveryState,
    *,
    namespace: str,
    max_report_bytes: int,
) -> FastAPI:
    """Create the report listener application bound to a discovery state."""
    app = FastAPI(
        title="manta-storspan listener",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    async def deliver(object_path: str, node_id: str) -> None:
        state.resolve(object_path, node_id)

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def report(request: Request) -> Response:
        method = request.method
        url_path = request.url.path
        logger.debug("Incoming request %s %s", method, url_path)

        if method != REPORT_METHOD:
            logger.warning("Bad request %s %s: bad method", method, url_path)
            response = _bad_request(status_code=405)
            response.headers["Allow"] = REPORT_METHOD
            return response

        parts = url_path.split("/")
        if len(parts) != 3 or not parts[2]:
            logger.warning("Bad request %s %s: bad path", method, url_path)
            return _bad_request()

        if parts[1] != namespace:
            logger.warning("Bad request %s %s: bad top-level path", method, url_path)
            return _bad_request("bad request: bad top")

        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > max_report_bytes:
                logger.warning(
                    "Bad request %s %s: body exceeds %d bytes",
                    method,
                    url_path,
                    max_report_bytes,
                )
                return _bad_request("bad request: too large", status_code=413)

        object_path = body.decode("utf-8", errors="replace").strip()
        node_id = parts[2]
        logger.debug("Report from %s for %s", node_id, object_path)
        return Response(
            status_code=204,
            background=BackgroundTask(deliver, object_path, node_id),
        )

    return app


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening TCP socket, failing fast with a readable error.

    The wildcard ``::`` binds dual-stack so that job tasks can report over
    IPv4 or IPv6.  Hosts without IPv6 fall back to ``0.0.0.0``.
    """
    if host == ANY_HOST:
        try:
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        except OSError:
            logger.debug("IPv6 unavailable, listening on %s", ANY_HOST_V4)
            host = ANY_HOST_V4
        else:
            return _bind(sock, host, port, dual_stack=True)

    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return _bind(socket.socket(family, socket.SOCK_STREAM), host, port)


def _bind(
    sock: socket.socket, host: str, port: int, *, dual_stack: bool = False
) -> socket.socket:
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if dual_stack:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise DiscoveryError(f"listen on {host}:{port}: {e}") from e
    sock.set_inheritable(True)
    return sock


class CallbackServer:
    """Serve the listener app with uvicorn inside the current event loop.

    Usage::

        async with CallbackServer(app, "::", 1725) as server:
            ...  # reports are accepted until the block exits
    """

    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        self.host = host
        self._requested_port = port
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                lifespan="off",
                access_log=False,
                log_level="warning",
            )
        )
        self._socket: socket.socket | None = None
        self._task: asyncio.Task | None = None

    @property
    def port(self) -> int:
        """Bound port (differs from the requested one when that was 0)."""
        if self._socket is None:
            return self._requested_port
        return self._socket.getsockname()[1]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._socket = bind_socket(self.host, self._requested_port)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[self._socket]), name="callback-server"
        )
        while not self._server.started:
            if self._task.done():
                await self._task
                raise DiscoveryError(f"listener on {self.host} exited during startup")
            await asyncio.sleep(STARTUP_POLL)
        logger.debug("Server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop accepting reports and wait for the server to shut down."""
        if self._task is None:
            return
        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._task = None
            if self._socket is not None:
                self._socket.close()
                self._socket = None
        logger.debug("Server stopped")

    async def __aenter__(self) -> CallbackServer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
