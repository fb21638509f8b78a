from __future__ import annotations

import json
import logging
import os
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, Union, cast

import httpx

from sharepointclient._httpx import (
    CookieSession,
    HttpxTransport,
    RequestHookSession,
    Session,
    SharepointConnectionParameters,
    Transport,
    TransportResponse,
)
from sharepointclient.digest import DigestContext, TokenContext
from sharepointclient.exceptions import (
    SharepointDataError,
    SharepointRequestError,
    http_status_error,
)
from sharepointclient.objects import ContextWebInformation, default_registry
from sharepointclient.registry import TypeRegistry
from sharepointclient.response import ResponseMapper, ResponseShape, classify_envelope

if TYPE_CHECKING:  # pragma: no cover
    import ssl


# Conditional import of orjson to support faster JSON processing if available
try:  # pragma: no cover
    import orjson  # type: ignore

    if os.environ.get("SHAREPOINTCLIENT_PREFER_ORJSON", "0") != "0":
        _HAS_ORJSON = True
    else:
        _HAS_ORJSON = False

    JSON_DECODE_ERRORS = (json.JSONDecodeError, orjson.JSONDecodeError)  # type: ignore

except ImportError:
    _HAS_ORJSON = False
    JSON_DECODE_ERRORS = (json.JSONDecodeError,)  # type: ignore

# UnicodeDecodeError covers bodies that are not even valid UTF-8
JSON_DECODE_ERRORS = JSON_DECODE_ERRORS + (UnicodeDecodeError,)  # type: ignore

# Constants
ACCEPT_VERBOSE_JSON = "application/json;odata=verbose"

USER_AGENT_STRING = "NONISV|arera|programmazione/1.0"

READ_METHOD = "get"

# Set up logger
logger = logging.getLogger("SharepointClient")


# Sentinel value for detecting unset timeout parameter
class _TimeoutUnsetType:
    def __repr__(self):
        return "_TIMEOUT_UNSET"


_TIMEOUT_UNSET = _TimeoutUnsetType()


def _get_timeout_config() -> dict:
    """Get granular timeout configuration from environment variables.

    Returns:
        dict: connect, read, write and pool timeouts, None where not set.
    """
    return {
        name: float(os.environ[f"SHAREPOINTCLIENT_{name.upper()}_TIMEOUT"])
        if f"SHAREPOINTCLIENT_{name.upper()}_TIMEOUT" in os.environ
        else None
        for name in ("connect", "read", "write", "pool")
    }


def _get_default_timeout() -> Optional[float]:
    try:
        timeout_str = os.environ.get("SHAREPOINTCLIENT_HTTP_TIMEOUT")
        return float(timeout_str) if timeout_str is not None else None
    except (TypeError, ValueError):
        return None


def _decode_json(content: bytes) -> Any:
    if _HAS_ORJSON:
        return orjson.loads(content)
    return json.loads(content.decode("utf-8"))


def _encode_json(payload: Any) -> bytes:
    if _HAS_ORJSON:
        return orjson.dumps(payload)
    return json.dumps(payload).encode("utf-8")


class Site:
    """A Python client for the REST API of one SharePoint site

    Requests go to ``<protocol>://<server_url>/<prefix>/<site_name>/_api/web/``.
    Mutating requests automatically carry a form digest, which is acquired
    from ``/_api/contextinfo`` when missing or stale and shared by every
    thread using the Site. JSON answers are turned into objects from
    :mod:`sharepointclient.objects` according to their ``__metadata.type``.

    Initialization:
        Site can be used as a context manager to keep one HTTP connection pool
        open for all requests

        >>> from sharepointclient import CookieSession, Site
        >>> with Site(
        ...     "contoso.sharepoint.com",
        ...     "team",
        ...     session=CookieSession("FedAuth=...; rtFa=..."),
        ... ) as site:
        ...     item = site.query("get", "lists/GetByTitle('Tasks')/items(1)")
        ...     item["Title"] = "Updated"
        ...     item.save()

    Parameters:
        server_url (str): Host name of the SharePoint server, without protocol.
        site_name (str): Name of the site.
        prefix (str), keyword-only: Path segment in front of the site name. Default "sites";
            an empty string addresses a site at the server root.
        protocol (str), keyword-only: URL scheme. Default "https".
        session (Session), keyword-only: Credential provider. Default: an unauthenticated
            CookieSession.
        transport (Transport), keyword-only: Performs the HTTP round trips. Default: an
            HttpxTransport built from ssl_verify, timeout and user_agent.
        registry (TypeRegistry), keyword-only: Type lookup for responses. Default: the
            registry of sharepointclient.objects.
        verbose (bool), keyword-only: Log every exchange at INFO level.
        ssl_verify (bool | ssl.SSLContext), keyword-only: Whether to verify SSL certificates.
        timeout (float | dict | httpx.Timeout | None), keyword-only: Timeout configuration
            for HTTP requests. When omitted, SHAREPOINTCLIENT_*_TIMEOUT environment variables
            are used.
        user_agent (str), keyword-only: User-Agent header value.
    """

    def __init__(
        self,
        server_url: str,
        site_name: str,
        *,
        prefix: str = "sites",
        protocol: str = "https",
        session: Optional[Session] = None,
        transport: Optional[Transport] = None,
        registry: Optional[TypeRegistry] = None,
        verbose: bool = False,
        ssl_verify: Union[bool, "ssl.SSLContext"] = True,
        timeout: Union[float, dict, httpx.Timeout, None, _TimeoutUnsetType] = _TIMEOUT_UNSET,
        user_agent: str = USER_AGENT_STRING,
    ):
        self._server_url = server_url
        self.name = site_name
        self.prefix = prefix
        uri_prefix = f"{prefix}/" if prefix else ""
        self.url = f"{server_url}/{uri_prefix}{site_name}"
        self.protocol = protocol
        self.verbose = verbose
        self.session: Session = session if session is not None else CookieSession()
        self.registry: TypeRegistry = registry if registry is not None else default_registry

        if timeout is _TIMEOUT_UNSET:
            timeout_value: httpx.Timeout = Site._construct_timeout_from_env()
        elif timeout is None:
            timeout_value = httpx.Timeout(None)
        else:
            timeout_value = Site._construct_timeout(cast(Union[float, dict, httpx.Timeout], timeout))

        self.connection_parameters = SharepointConnectionParameters(
            ssl_verify=ssl_verify,
            timeout=timeout_value,
            user_agent=user_agent,
        )
        self.transport: Transport = (
            transport if transport is not None else HttpxTransport(self.connection_parameters)
        )
        self.token_context = TokenContext()
        self.response_mapper = ResponseMapper(self, self.registry)

    def __repr__(self) -> str:
        return f"Site {self.name} at {self.protocol}://{self.url}"

    def __enter__(self):
        """Open the transport's connection pool, if it has one."""
        if hasattr(self.transport, "__enter__"):
            self.transport.__enter__()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self) -> None:
        """Close the transport. Further requests raise SharepointClientClosed."""
        if hasattr(self.transport, "close"):
            self.transport.close()
        self.token_context.invalidate()

    @staticmethod
    def _construct_timeout_from_env() -> httpx.Timeout:
        """Construct httpx.Timeout object from environment variables only.

        Returns:
            httpx.Timeout: Configured timeout object, or httpx.Timeout(None) when
                no environment configuration is found.
        """
        default_timeout = _get_default_timeout()
        timeout_config = {k: v for k, v in _get_timeout_config().items() if v is not None}
        if not timeout_config and default_timeout is None:
            return httpx.Timeout(None)
        return httpx.Timeout(default_timeout, **timeout_config)

    @staticmethod
    def _construct_timeout(timeout: Union[float, dict, httpx.Timeout]) -> httpx.Timeout:
        """Construct httpx.Timeout object from user-provided timeout parameter.

        If timeout is a dict, unspecified values are taken from the environment.
        """
        if isinstance(timeout, httpx.Timeout):
            return timeout
        elif isinstance(timeout, dict):
            timeout_config = {k: v for k, v in _get_timeout_config().items() if v is not None}
            return httpx.Timeout(_get_default_timeout(), **{**timeout_config, **timeout})
        else:
            return httpx.Timeout(timeout)

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def authentication_path(self) -> str:
        """URL of the forms sign-in endpoint used by cookie-based sessions."""
        return f"{self.protocol}://{self.server_url}/_forms/default.aspx?wa=wsignin1.0"

    @property
    def context_info_path(self) -> str:
        return f"{self.protocol}://{self.url}/_api/contextinfo"

    def api_path(self, uri: str) -> str:
        return f"{self.protocol}://{self.url}/_api/web/{uri}"

    def build_url(self, uri: str) -> str:
        """Absolute URLs are kept, anything else is relative to the web API root."""
        return uri if re.match(r"^http", uri) else self.api_path(uri)

    def context_info(self) -> Any:
        """Fetches the Web object of the site."""
        return self.query(READ_METHOD, "")

    def form_digest(self) -> str:
        """Returns a valid form digest, acquiring a new one if needed.

        SharePoint uses 'X-RequestDigest' as a CSRF-like security token. The
        digest acquired last is reused for as long as it is up to date.
        """
        return self.token_context.ensure_fresh(self._acquire_context_info)

    def _acquire_context_info(self) -> DigestContext:
        url, response = self._send("post", self.context_info_path)
        context = self.handle_response(
            "post", url, None, response, make_object=self._context_info_from_response
        )
        if not hasattr(context, "is_up_to_date") or not getattr(context, "form_digest_value", None):
            raise SharepointRequestError(
                f"POST {self.context_info_path} did not return a form digest: {context!r}",
                method="post",
                url=self.context_info_path,
            )
        logger.info("Acquired form digest for %s", self.url)
        return context

    def _context_info_from_response(self, document: Any) -> Any:
        # built directly so that a custom registry cannot change the digest type
        if not isinstance(document, dict):
            return document
        shape, payload = classify_envelope(document)
        if shape is ResponseShape.SINGLE and isinstance(payload, dict):
            return ContextWebInformation(self, payload)
        return payload

    def build_headers(self, method: str) -> Dict[str, str]:
        """Headers for a request; mutating methods also get the form digest."""
        headers = {
            "Accept": ACCEPT_VERBOSE_JSON,
            "User-Agent": self.connection_parameters.user_agent,
        }
        if self.session.cookie:
            headers["Cookie"] = self.session.cookie
        if method != READ_METHOD:
            headers["Content-Type"] = headers["Accept"]
            # the acquisition request itself goes out without a digest
            if not self.token_context.acquiring:
                digest = self.form_digest()
                headers["X-RequestDigest"] = digest
                headers["Authorization"] = f"Bearer {digest}"
        return headers

    @staticmethod
    def encode_body(body: Any) -> Optional[bytes]:
        if body is None or isinstance(body, bytes):
            return body
        if isinstance(body, str):
            return body.encode("utf-8")
        return _encode_json(body)

    def query(
        self,
        method: str,
        uri: str,
        body: Any = None,
        skip_json: bool = False,
        hook: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """Sends a request to the site and maps the answer to objects.

        Args:
            method (str): HTTP method ("get", "post", "put", "patch", "delete", ...).
            uri (str): Path relative to ``_api/web/``, or an absolute URL.
            body (str | bytes | dict | list, optional): Request body. Ignored for "get".
            skip_json (bool): Return the raw response text without decoding it.
            hook (callable, optional): Called with the outgoing request right
                before it is sent, after the session's own hook.

        Returns:
            A SharepointObject, a list of them, None for an empty result, or
            the raw response text when the body is empty or skip_json is set.

        Raises:
            SharepointRequestError: For undecodable bodies, HTTP errors without a
                JSON body and connection problems.
            SharepointDataError: When SharePoint answers with an OData error.
            SharepointTypeLookupError: When a response type names an unknown namespace.
        """
        method = method.lower()
        url, response = self._send(method, uri, body, hook)
        return self.handle_response(method, url, body, response, skip_json)

    def _send(
        self,
        method: str,
        uri: str,
        body: Any = None,
        hook: Optional[Callable[[Any], None]] = None,
    ) -> Tuple[str, TransportResponse]:
        url = self.build_url(uri)
        headers = self.build_headers(method)
        content = self.encode_body(body) if method != READ_METHOD else None

        hooks: List[Callable[[Any], None]] = []
        if isinstance(self.session, RequestHookSession):
            hooks.append(self.session.prepare_request)
        if hook is not None:
            hooks.append(hook)

        logger.debug("%s %s", method.upper(), url)
        response = self.transport.send(
            method, url, content, headers, verbose=self.verbose, hooks=hooks
        )
        return url, response

    def handle_response(
        self,
        method: str,
        url: str,
        body: Any,
        response: TransportResponse,
        skip_json: bool = False,
        make_object: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Classify the outcome of a request.

        A non-empty body is decoded unless skip_json is set, whatever the
        status, and handed to make_object (the response mapper by default).
        Otherwise error statuses raise and anything else is returned as text.
        """
        if not skip_json and response.content:
            try:
                data = _decode_json(response.content)
            except JSON_DECODE_ERRORS as e:
                raise SharepointRequestError(
                    f"Could not decode the response to {method.upper()} {url}"
                    f" (body={body!r}): {e!r}, response={response.text}",
                    method=method,
                    url=url,
                    status_code=response.status_code,
                    body=body,
                    response_body=response.text,
                ) from e
            if isinstance(data, dict) and data.get("error") is not None:
                raise SharepointDataError(data["error"], url, body)
            return (make_object or self.make_object_from_response)(data)
        if response.status_code >= 400:
            raise http_status_error(
                method, url, response.status_code, body=body, response_body=response.text
            )
        return response.text

    def make_object_from_response(self, data: Any) -> Any:
        return self.response_mapper.map(data)
