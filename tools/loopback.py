from __future__ import annotations

import html
import time
from typing import Callable, Optional
from urllib.parse import parse_qs
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from tools.errors import AuthorizationError, CallbackTimeoutError
from utils.logger import get_logger


CallbackHandler = Callable[[dict[str, str]], str]

_logger = get_logger("loopback")

_FAILURE_PAGE = (
    "<html><body style=\"font-family: ui-sans-serif; padding: 24px\">"
    "<h2>Gmail connect failed</h2>"
    "<p>{message}</p>"
    "<p>Return to CompanyTinder and try again.</p>"
    "</body></html>"
)


class _QuietServer(WSGIServer):
    # per-connection socket timeout, set by LoopbackListener.wait()
    connection_timeout: Optional[float] = None

    def handle_error(self, request, client_address):
        _logger.debug("Dropped connection from %s", client_address[0], exc_info=True)


class _QuietHandler(WSGIRequestHandler):
    # wsgiref prints every request to stderr by default
    def log_message(self, format, *args):  # noqa: A002
        _logger.debug(format, *args)

    def setup(self):
        # a client that connects and never sends must not stall the listener
        self.timeout = self.server.connection_timeout
        super().setup()


class _CallbackApp:
    def __init__(self, path: str) -> None:
        self.path = path
        self.handler: Optional[CallbackHandler] = None
        self.done = False
        self.error: Optional[BaseException] = None

    def __call__(self, environ, start_response):
        if environ.get("PATH_INFO") != self.path:
            start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
            return [b"Not found"]

        self.done = True
        try:
            if environ.get("REQUEST_METHOD") != "GET":
                raise AuthorizationError("Invalid OAuth response (unexpected request method).")
            if self.handler is None:
                raise AuthorizationError("Invalid OAuth response (no connect attempt is waiting).")
            query = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
            page = self.handler({k: v[0] for k, v in query.items()})
        except Exception as e:
            # re-raised from LoopbackListener.wait()
            self.error = e
            status = "400 Bad Request" if isinstance(e, AuthorizationError) else "500 Internal Server Error"
            start_response(status, [("Content-Type", "text/html; charset=utf-8")])
            return [_FAILURE_PAGE.format(message=html.escape(str(e))).encode("utf-8")]

        start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
        return [page.encode("utf-8")]


class LoopbackListener:
    """
    One-shot HTTP listener for the OAuth redirect.

    start() binds port 0 on the loopback host, so the OS picks a free port and
    the port cannot be taken between selection and bind. The first request to
    the callback path settles the attempt; other paths get a 404.

    Requests are served one at a time. A connection that sends nothing is
    dropped after `idle_timeout_s` (or at the deadline, if sooner) so browser
    preconnects and stray clients cannot hold the listener past its timeout.
    """

    def __init__(self, host: str, callback_path: str, idle_timeout_s: float = 5.0) -> None:
        self.host = host
        self.callback_path = callback_path
        self.idle_timeout_s = idle_timeout_s
        self._app = _CallbackApp(callback_path)
        self._server: Optional[_QuietServer] = None

    @property
    def is_bound(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("Listener is not started")
        return self._server.server_port

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.callback_path}"

    def start(self) -> "LoopbackListener":
        if self._server is None:
            self._server = make_server(
                self.host, 0, self._app, server_class=_QuietServer, handler_class=_QuietHandler
            )
        return self

    def wait(self, handler: CallbackHandler, timeout_s: float) -> None:
        """Serve until the callback is handled. Raises whatever the handler raised."""
        if self._server is None:
            raise RuntimeError("Listener is not started")
        self._app.handler = handler
        deadline = time.monotonic() + timeout_s
        while not self._app.done:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CallbackTimeoutError("OAuth timed out waiting for the browser redirect.")
            self._server.timeout = remaining
            self._server.connection_timeout = min(remaining, self.idle_timeout_s)
            self._server.handle_request()
        if self._app.error is not None:
            raise self._app.error

    def close(self) -> None:
        if self._server is not None:
            self._server.server_close()
            self._server = None

    def __enter__(self) -> "LoopbackListener":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()
