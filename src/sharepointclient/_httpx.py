from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Mapping,
    NamedTuple,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

import httpx

from sharepointclient.decorators import use_client_session
from sharepointclient.exceptions import sharepoint_errors

if TYPE_CHECKING:  # pragma: no cover
    import ssl

logger = logging.getLogger(__name__)

RequestHook = Callable[[Any], None]

# Never written to the verbose log in clear text
_SENSITIVE_HEADERS = ("cookie", "authorization", "x-requestdigest")


@dataclass(frozen=True)
class SharepointConnectionParameters:
    """Parameters required to reach a SharePoint server.

    Attributes:
        ssl_verify (bool | ssl.SSLContext): Whether to verify SSL certificates.
        timeout (httpx.Timeout): Configured timeout object for HTTP requests.
        user_agent (str): Value of the User-Agent header sent with every request.
    """

    ssl_verify: Union[bool, "ssl.SSLContext"]
    timeout: httpx.Timeout
    user_agent: str


class TransportResponse(NamedTuple):
    """Status code and raw body of one HTTP exchange."""

    status_code: int
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace") if self.content else ""


class Transport(Protocol):
    """Anything able to perform one HTTP round trip for a Site."""

    def send(
        self,
        method: str,
        url: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        *,
        verbose: bool = False,
        hooks: Sequence[RequestHook] = (),
    ) -> TransportResponse:
        ...  # pragma: no cover


@runtime_checkable
class Session(Protocol):
    """Credential provider for a Site: exposes the value of the Cookie header."""

    cookie: Optional[str]


@runtime_checkable
class RequestHookSession(Session, Protocol):
    """Session that also wants to see every outgoing request before it is sent."""

    def prepare_request(self, request: Any) -> None:
        ...  # pragma: no cover


class CookieSession:
    """Session holding an already authenticated cookie string.

    Parameters:
        cookie (str, optional): The Cookie header value, e.g. ``"FedAuth=...; rtFa=..."``.
    """

    def __init__(self, cookie: Optional[str] = None):
        self.cookie = cookie

    def __repr__(self) -> str:
        return f"CookieSession(authenticated={bool(self.cookie)})"

    @classmethod
    def from_cookies(cls, cookies: Union[Mapping[str, str], httpx.Cookies]) -> "CookieSession":
        """Build a session from individual cookies such as FedAuth and rtFa."""
        cookie_pairs = [f"{name}={value}" for name, value in cookies.items()]
        return cls("; ".join(cookie_pairs) or None)


class HttpxTransport:
    """Transport sending Site requests through an httpx.Client.

    Can be used as a context manager to keep one httpx.Client (and its
    connection pool) open for many requests. Outside a context manager each
    request opens and closes its own client.

    Parameters:
        params (SharepointConnectionParameters): SSL, timeout and user agent settings.
        http_transport (httpx.BaseTransport, optional): Low level httpx transport,
            e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        params: SharepointConnectionParameters,
        *,
        http_transport: Optional[httpx.BaseTransport] = None,
    ):
        self.params = params
        self._http_transport = http_transport
        self.httpx_client: Optional[httpx.Client] = None
        self.is_closed = False

    def __enter__(self):
        self.httpx_client = self.get_http_client()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self) -> None:
        if self.httpx_client and not self.httpx_client.is_closed:
            self.httpx_client.close()
        self.httpx_client = None
        self.is_closed = True

    def get_http_client(self) -> httpx.Client:
        """Returns a httpx client configured with the connection parameters."""
        return httpx.Client(
            timeout=self.params.timeout,
            verify=self.params.ssl_verify,
            transport=self._http_transport,
        )

    @sharepoint_errors
    @use_client_session
    def send(
        self,
        method: str,
        url: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        *,
        verbose: bool = False,
        hooks: Sequence[RequestHook] = (),
        httpx_client: httpx.Client,
    ) -> TransportResponse:
        """Send one request and return its status code and body.

        Args:
            method (str): HTTP method, any case.
            url (str): Absolute URL.
            body (bytes, optional): Request body.
            headers (Mapping[str, str], optional): Request headers.
            verbose (bool): Log the exchange at INFO level.
            hooks (Sequence[Callable]): Called in order with the mutable
                httpx.Request right before it is sent.
            httpx_client (httpx.Client): Supplied by use_client_session.

        Raises:
            SharepointConnectionError: For network connectivity issues.
            SharepointClientClosed: If the transport has been closed.
        """
        request = httpx_client.build_request(
            method.upper(), url, content=body, headers=headers
        )
        for hook in hooks:
            hook(request)
        if verbose:
            self._log_request(request)
        response = httpx_client.send(request)
        if verbose:
            logger.info("< %s %s", response.status_code, response.reason_phrase)
        return TransportResponse(response.status_code, response.content)

    @staticmethod
    def _log_request(request: httpx.Request) -> None:
        logger.info("> %s %s", request.method, request.url)
        for name, value in request.headers.items():
            if name.lower() in _SENSITIVE_HEADERS:
                value = "[redacted]"
            logger.info("> %s: %s", name, value)
