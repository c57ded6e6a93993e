"""HTTP front for e-paper devices.

The listening socket is non-blocking and shared by every dispatcher worker:
each worker waits briefly for it to become readable, accepts one connection
and serves it to completion before accepting the next.
"""

import hmac
import json
import logging
import select
import socket
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional, Union
from urllib.parse import urlparse

from ..config.settings import PhotoFrameSettings
from ..dispatcher import RequestDispatcher
from ..exceptions import MalformedPayloadError
from ..service import (
    FrameOutcome,
    FrameRequest,
    FrameService,
    TelemetryRequest,
    frame_telemetry_from_header,
)
from ..telemetry import parse_payloads

logger = logging.getLogger(__name__)

Connection = tuple[socket.socket, Any]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, API_KEY, Data, Content-Type",
}

# Upper bound for an uploaded event log
MAX_BODY_BYTES = 1024 * 1024


class FrameHTTPServer(HTTPServer):
    """HTTPServer whose accept loop is driven by dispatcher workers."""

    def __init__(
        self,
        server_address: tuple[str, int],
        handler: Callable[..., BaseHTTPRequestHandler],
        request_timeout: float = 30.0,
    ) -> None:
        super().__init__(server_address, handler)
        self.socket.setblocking(False)
        self.request_timeout = request_timeout

    def receive_request(self, timeout: float = 0.5) -> Optional[Connection]:
        """Accept one pending connection, or return None if none arrived in time."""
        readable, _, _ = select.select([self.socket], [], [], timeout)
        if not readable:
            return None

        try:
            conn, client_address = self.get_request()
        except (BlockingIOError, InterruptedError):
            # another worker accepted it first
            return None

        conn.setblocking(True)
        conn.settimeout(self.request_timeout)
        return conn, client_address

    def handle_connection(self, connection: Connection) -> None:
        """Serve one accepted connection; the socket is always shut down afterwards."""
        request, client_address = connection
        try:
            self.finish_request(request, client_address)
        finally:
            self.shutdown_request(request)


class FrameRequestHandler(BaseHTTPRequestHandler):
    """Routes device requests onto the frame service."""

    server_version = "photoframe"

    def __init__(self, *args: Any, web_server: "FrameWebServer", **kwargs: Any) -> None:
        self.web_server = web_server
        super().__init__(*args, **kwargs)

    @property
    def service(self) -> FrameService:
        return self.web_server.service

    def do_GET(self) -> None:
        """Handle GET requests."""
        path = urlparse(self.path).path

        if path == "/health":
            self._handle_health_check()
        elif path == "/frame":
            if self._check_auth():
                self._handle_frame()
        else:
            self._send_404()

    def do_POST(self) -> None:
        """Handle POST requests."""
        path = urlparse(self.path).path

        # the body is consumed before any response is sent
        body = self._read_body()
        if body is None:
            return

        if path not in {"/telemetry", "/frame"}:
            self._send_404()
        elif self._check_auth():
            self._handle_telemetry(body)

    def do_OPTIONS(self) -> None:
        """Answer CORS preflight requests."""
        self.send_response(204)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_PUT(self) -> None:
        self._send_405()

    def do_DELETE(self) -> None:
        self._send_405()

    def do_PATCH(self) -> None:
        self._send_405()

    def do_HEAD(self) -> None:
        self._send_405()

    def _handle_frame(self) -> None:
        telemetry = frame_telemetry_from_header(self.headers.get("Data"))
        outcome = self.service.fetch_frame(FrameRequest(self.client_address[0], telemetry))
        self._send_outcome(outcome, "application/octet-stream")

    def _handle_telemetry(self, body: bytes) -> None:
        try:
            payloads = parse_payloads(body)
        except MalformedPayloadError as e:
            logger.warning(f"Rejected telemetry from {self.client_address[0]}: {e}")
            self._send_response(400, "Bad request", "text/plain")
            return

        outcome = self.service.record_telemetry(TelemetryRequest(self.client_address[0], payloads))
        self._send_outcome(outcome, "text/plain")

    def _handle_health_check(self) -> None:
        pool = self.service.pool
        dispatcher = self.web_server.dispatcher
        self._send_json_response(
            200,
            {
                "status": "ok",
                "pool": {"capacity": pool.capacity, "available": pool.available},
                "workers": {
                    "configured": dispatcher.workers if dispatcher else 0,
                    "alive": dispatcher.alive_workers if dispatcher else 0,
                },
                "processed": dispatcher.processed if dispatcher else 0,
                "faults": dispatcher.faults if dispatcher else 0,
            },
        )

    def _check_auth(self) -> bool:
        """Send 401 and return False unless the request carries the API key."""
        expected = self.web_server.settings.api_key
        presented = self._presented_key()

        if expected and presented and hmac.compare_digest(presented.encode(), expected.encode()):
            return True

        logger.warning(f"Unauthorized {self.command} {self.path} from {self.client_address[0]}")
        self._send_response(401, "Unauthorized", "text/plain")
        return False

    def _presented_key(self) -> Optional[str]:
        authorization = self.headers.get("Authorization", "")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
        key = self.headers.get("API_KEY")
        return key.strip() if key else None

    def _read_body(self) -> Optional[bytes]:
        """Read the request body; sends 400 and returns None if its length is unusable."""
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = -1

        if length < 0 or length > MAX_BODY_BYTES:
            self._send_response(400, "Bad request", "text/plain")
            return None
        return self.rfile.read(length)

    def _send_outcome(self, outcome: FrameOutcome, content_type: str) -> None:
        if outcome.ok and outcome.body:
            self._send_response(outcome.status.value, outcome.body, content_type)
        else:
            self._send_response(outcome.status.value, outcome.message, "text/plain")

    def _send_response(self, status_code: int, content: Union[str, bytes], content_type: str) -> None:
        """Send HTTP response."""
        content_bytes = content.encode("utf-8") if isinstance(content, str) else content

        self.send_response(status_code)
        self.send_header("Content-Type", content_type)
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(content_bytes)))
        self.end_headers()

        self.wfile.write(content_bytes)

    def _send_json_response(self, status_code: int, data: dict[str, Any]) -> None:
        """Send JSON response."""
        self._send_response(status_code, json.dumps(data, indent=2), "application/json")

    def _send_404(self) -> None:
        self._send_response(404, "404 Not Found", "text/plain")

    def _send_405(self) -> None:
        self.send_response(405)
        self.send_header("Allow", "GET, POST, OPTIONS")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use our logger."""
        logger.info(f"{self.address_string()} {format % args}")


class FrameWebServer:
    """Binds the HTTP front and runs it on a fixed set of dispatcher workers."""

    def __init__(self, settings: PhotoFrameSettings, service: FrameService) -> None:
        """Initialize the web server.

        Args:
            settings: Application settings; host, port, workers, request_timeout
                and api_key are used
            service: Frame pipeline the handlers delegate to

        Note:
            The server is not started automatically. Call start() to bind the
            socket and launch the workers.
        """
        self.settings = settings
        self.service = service
        self.host = settings.host
        self.port = settings.port

        self.server: Optional[FrameHTTPServer] = None
        self.dispatcher: Optional[RequestDispatcher[Connection]] = None
        self.running = False

    def start(self) -> None:
        """Bind the listening socket and start the workers."""
        if self.running:
            logger.warning("Web server already running")
            return

        def handler(*args: Any, **kwargs: Any) -> FrameRequestHandler:
            return FrameRequestHandler(*args, web_server=self, **kwargs)

        try:
            self.server = FrameHTTPServer(
                (self.host, self.port), handler, request_timeout=self.settings.request_timeout
            )
        except OSError:
            logger.exception(f"Failed to bind web server on {self.host}:{self.port}")
            raise

        # port 0 binds an ephemeral port
        self.port = self.server.server_address[1]

        self.dispatcher = RequestDispatcher(
            self.settings.workers, self.server.receive_request, self.server.handle_connection
        )
        self.dispatcher.start()

        self.running = True
        logger.info(
            f"Web server started on http://{self.host}:{self.port} "
            f"with {self.settings.workers} worker(s)"
        )

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the workers, then release the listening socket."""
        if not self.running:
            logger.debug("Web server already stopped or not running")
            return

        logger.info("Stopping web server...")
        self.running = False

        if self.dispatcher:
            self.dispatcher.stop(timeout=timeout)
            self.dispatcher = None

        if self.server:
            try:
                self.server.server_close()
            except OSError as e:
                logger.warning(f"Error during server_close(): {e}")
            self.server = None

        logger.info("Web server stopped")
