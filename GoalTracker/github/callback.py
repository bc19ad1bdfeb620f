"""
Loopback receiver for the GitHub OAuth redirect.

Desktop applications cannot register a URL scheme portably, so the authorization
request uses ``http://127.0.0.1:<port>/github/callback`` as its redirect URI. The
:class:`CallbackReceiver` listens on that address for exactly one redirect and
returns its query parameters.
"""
import http.server
import logging
import threading
import time
import urllib.parse
from typing import Dict, Optional

from ..status import status

POLL_INTERVAL = 0.25

SUCCESS_PAGE = b"""<!DOCTYPE html>
<html><head><title>GoalTracker</title></head>
<body><p>Sign-in complete. You can close this window and return to GoalTracker.</p></body>
</html>"""


class _CallbackHandler(http.server.BaseHTTPRequestHandler):

    def do_GET(self):
        url = urllib.parse.urlsplit(self.path)
        if url.path != self.server.callback_path:
            self.send_error(404)
            return

        query = urllib.parse.parse_qs(url.query)
        self.server.params = {k: v[0] for k, v in query.items()}

        self.send_response(200)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(SUCCESS_PAGE)))
        self.end_headers()
        self.wfile.write(SUCCESS_PAGE)

    def log_message(self, format, *args):
        logging.debug(f'Callback server: {format % args}')


class CallbackReceiver:
    """Wait for one OAuth redirect on a loopback address.

    Use as a context manager: the server is bound on entry and closed on exit.

    Args:
        host (str): Loopback address to bind, e.g. '127.0.0.1'.
        port (int): Port to bind. 0 picks a free port.
        path (str): Path of the redirect URI, e.g. '/github/callback'.
        timeout (float): Seconds :meth:`wait` blocks before giving up.
    """

    def __init__(self, host: str = '127.0.0.1', port: int = 0, path: str = '/github/callback', timeout: float = 120):
        self.host = host
        self.port = port
        self.path = path
        self.timeout = timeout

        self._server: Optional[http.server.HTTPServer] = None
        self._cancelled = threading.Event()

    @classmethod
    def from_config(cls, config: Dict) -> 'CallbackReceiver':
        return cls(
            host=config['redirect_host'],
            port=config['redirect_port'],
            path=config['redirect_path'],
            timeout=config['timeout'],
        )

    @property
    def redirect_uri(self) -> str:
        port = self._server.server_address[1] if self._server else self.port
        return f'http://{self.host}:{port}{self.path}'

    def __enter__(self) -> 'CallbackReceiver':
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        try:
            self._server = http.server.HTTPServer((self.host, self.port), _CallbackHandler)
        except OSError as ex:
            raise status.AuthenticationException(
                f'Could not listen for the sign-in redirect on {self.host}:{self.port}: {ex}'
            ) from ex
        self._server.callback_path = self.path
        self._server.params = None
        self._server.timeout = POLL_INTERVAL
        logging.debug(f'Listening for the OAuth redirect on {self.redirect_uri}')

    def close(self) -> None:
        if self._server is None:
            return
        self._server.server_close()
        self._server = None

    def cancel(self) -> None:
        """Make a pending :meth:`wait` return early. Safe to call from any thread."""
        self._cancelled.set()

    def wait(self) -> Dict[str, str]:
        """Block until the redirect arrives and return its query parameters.

        Raises:
            status.AuthenticationCancelledException: If :meth:`cancel` was called.
            status.AuthenticationException: If no redirect arrived within the timeout.
        """
        if self._server is None:
            raise RuntimeError('The callback receiver is not open.')

        deadline = time.monotonic() + self.timeout
        while self._server.params is None:
            if self._cancelled.is_set():
                raise status.AuthenticationCancelledException('Stopped waiting for the GitHub redirect.')
            if time.monotonic() >= deadline:
                raise status.AuthenticationException(
                    f'Timed out after {self.timeout} seconds waiting for the GitHub redirect.'
                )
            self._server.handle_request()

        logging.debug('Received the OAuth redirect')
        return self._server.params
