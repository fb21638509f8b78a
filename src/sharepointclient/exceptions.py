"""
Custom exceptions for the sharepointclient package.

This module provides SharePoint-specific exceptions for the three ways a query
can fail: the request itself (transport, HTTP status or undecodable body), the
server reporting an OData error in an otherwise well-formed document, and a
response type that names an unregistered namespace.
"""

import functools
from typing import Any, Callable, Dict, Optional, Type, TypeVar, cast

import httpx

T = TypeVar("T", bound=Callable[..., Any])


class SharepointError(Exception):
    """Base exception for all SharePoint-related errors."""

    pass


class SharepointClientClosed(SharepointError):
    """
    Raised when a request is attempted on a closed Site or transport.
    """

    def __init__(self, message: str = "The SharePoint client is closed") -> None:
        super().__init__(message)


class SharepointRequestError(SharepointError):
    """
    Raised when a request fails before a usable JSON document is obtained.

    Covers transport failures, HTTP error statuses without a JSON body and
    response bodies that are not valid JSON.
    """

    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Any = None,
        response_body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        self.response_body = response_body

    def __str__(self) -> str:
        return self.message


# Connection and network errors
class SharepointConnectionError(SharepointRequestError):
    """Raised when the SharePoint server cannot be reached."""

    def __str__(self) -> str:
        return f"SharePoint connection error: {self.message}"


class SharepointTimeoutError(SharepointConnectionError):
    def __str__(self) -> str:
        return f"SharePoint request timeout: {self.message}"


class SharepointProtocolError(SharepointConnectionError):
    def __str__(self) -> str:
        return f"SharePoint protocol error: {self.message}"


class SharepointNetworkError(SharepointConnectionError):
    def __str__(self) -> str:
        return f"SharePoint network error: {self.message}"


# HTTP status errors
class SharepointHTTPError(SharepointRequestError):
    """
    Raised when SharePoint answers with a status >= 400 and no JSON body.
    """

    def __str__(self) -> str:
        return f"{self.message} (HTTP {self.status_code})"


class SharepointBadRequestError(SharepointHTTPError):
    pass


class SharepointAuthenticationError(SharepointHTTPError):
    """Raised for 401: the session cookie is missing or expired."""

    pass


class SharepointPermissionError(SharepointHTTPError):
    """Raised for 403: often a stale or missing form digest."""

    pass


class SharepointResourceNotFoundError(SharepointHTTPError):
    pass


class SharepointConflictError(SharepointHTTPError):
    """Raised for 409, e.g. an IF-MATCH etag that no longer matches."""

    pass


class SharepointRateLimitError(SharepointHTTPError):
    pass


class SharepointServerError(SharepointHTTPError):
    """Base class for 5xx responses."""

    pass


class SharepointInternalServerError(SharepointServerError):
    pass


class SharepointServiceUnavailableError(SharepointServerError):
    pass


class SharepointDataError(SharepointError):
    """
    Raised when SharePoint returns a JSON document carrying a top-level
    ``error`` member.

    Attributes:
        data (dict): The decoded error payload (the value of ``error``).
        url (str): The URL of the failed request.
        body: The body that was sent with the failed request.
    """

    def __init__(self, data: Dict[str, Any], url: str, body: Any = None) -> None:
        self.data = data
        self.url = url
        self.body = body
        super().__init__(str(self))

    @property
    def code(self) -> Optional[str]:
        if isinstance(self.data, dict):
            return self.data.get("code")
        return None

    @property
    def message(self) -> str:
        if not isinstance(self.data, dict):
            return str(self.data)
        message = self.data.get("message")
        # verbose OData wraps the text as {"lang": ..., "value": ...}
        if isinstance(message, dict):
            return str(message.get("value", ""))
        return str(message or "")

    def __str__(self) -> str:
        return f"SharePoint returned an error for {self.url}: [{self.code}] {self.message}"


class SharepointTypeLookupError(SharepointError, LookupError):
    """
    Raised when a response type names a namespace that has not been registered.
    """

    def __init__(self, namespace: str, type_descriptor: str) -> None:
        self.namespace = namespace
        self.type_descriptor = type_descriptor
        super().__init__(
            f"Unknown SharePoint namespace {namespace!r} in type {type_descriptor!r}"
        )


_HTTP_STATUS_EXCEPTIONS: Dict[int, Type[SharepointHTTPError]] = {
    400: SharepointBadRequestError,
    401: SharepointAuthenticationError,
    403: SharepointPermissionError,
    404: SharepointResourceNotFoundError,
    409: SharepointConflictError,
    429: SharepointRateLimitError,
    500: SharepointInternalServerError,
    503: SharepointServiceUnavailableError,
}

_CONNECTION_EXCEPTIONS: Dict[Type[httpx.RequestError], Type[SharepointConnectionError]] = {
    httpx.TimeoutException: SharepointTimeoutError,
    httpx.RemoteProtocolError: SharepointProtocolError,
    httpx.NetworkError: SharepointNetworkError,
}


def http_status_error(method: str, url: str, status_code: int, **kwargs: Any) -> SharepointHTTPError:
    """Build the exception for an HTTP error status with no JSON body."""
    if status_code in _HTTP_STATUS_EXCEPTIONS:
        exception_class: Type[SharepointHTTPError] = _HTTP_STATUS_EXCEPTIONS[status_code]
    elif status_code >= 500:
        exception_class = SharepointServerError
    else:
        exception_class = SharepointHTTPError
    return exception_class(
        f"{method.upper()} {url} responded with {status_code}",
        method=method,
        url=url,
        status_code=status_code,
        **kwargs,
    )


def _create_connection_exception(original_error: httpx.RequestError) -> SharepointConnectionError:
    """Create the SharePoint exception matching an httpx transport error."""
    try:
        request = original_error.request
        method, url = request.method, str(request.url)
    except RuntimeError:
        # httpx raises when the error was created without a request
        method, url = None, None

    for error_type, exception_class in _CONNECTION_EXCEPTIONS.items():
        if isinstance(original_error, error_type):
            return exception_class(str(original_error), method=method, url=url)
    return SharepointConnectionError(f"Connection error: {original_error}", method=method, url=url)


def sharepoint_errors(func: T) -> T:
    """
    Decorator that converts httpx transport exceptions to SharePoint exceptions.

    Usage:
        >>> @sharepoint_errors
        ... def send(self, method, url, body=None, headers=None):
        ...     return self.httpx_client.request(method, url, content=body, headers=headers)
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except httpx.RequestError as e:
            raise _create_connection_exception(e) from e

    return cast(T, wrapper)
