"""sharepointclient is a Python client for the REST API of SharePoint sites.

It sends requests to a site's ``_api/web`` root, manages the form digest
needed by mutating requests, and turns verbose-OData JSON answers into
Python objects according to their ``__metadata.type``.
"""

import importlib.metadata

from sharepointclient.exceptions import (
    # Base exceptions
    SharepointError,
    SharepointClientClosed,
    # Request errors
    SharepointRequestError,
    SharepointConnectionError,
    SharepointTimeoutError,
    SharepointProtocolError,
    SharepointNetworkError,
    # HTTP errors
    SharepointHTTPError,
    SharepointBadRequestError,
    SharepointAuthenticationError,
    SharepointPermissionError,
    SharepointResourceNotFoundError,
    SharepointConflictError,
    SharepointRateLimitError,
    SharepointServerError,
    SharepointInternalServerError,
    SharepointServiceUnavailableError,
    # Data and type errors
    SharepointDataError,
    SharepointTypeLookupError,
)
from sharepointclient.SharepointSite import Site
from sharepointclient._httpx import (
    CookieSession,
    HttpxTransport,
    RequestHookSession,
    Session,
    SharepointConnectionParameters,
    Transport,
    TransportResponse,
)
from sharepointclient.digest import TokenContext
from sharepointclient.objects import (
    ContextWebInformation,
    GenericSharepointObject,
    SharepointObject,
    default_registry,
)
from sharepointclient.registry import TypeRegistry, normalize_type_name
from sharepointclient.response import ResponseMapper, ResponseShape

__version__ = importlib.metadata.version("sharepointclient")
__all__ = [
    # Core client
    "Site",
    # Transport and session
    "CookieSession",
    "HttpxTransport",
    "RequestHookSession",
    "Session",
    "SharepointConnectionParameters",
    "Transport",
    "TransportResponse",
    # Pipeline components
    "TokenContext",
    "TypeRegistry",
    "normalize_type_name",
    "ResponseMapper",
    "ResponseShape",
    # Objects
    "SharepointObject",
    "GenericSharepointObject",
    "ContextWebInformation",
    "default_registry",
    # Exceptions
    "SharepointError",
    "SharepointClientClosed",
    "SharepointRequestError",
    "SharepointConnectionError",
    "SharepointTimeoutError",
    "SharepointProtocolError",
    "SharepointNetworkError",
    "SharepointHTTPError",
    "SharepointBadRequestError",
    "SharepointAuthenticationError",
    "SharepointPermissionError",
    "SharepointResourceNotFoundError",
    "SharepointConflictError",
    "SharepointRateLimitError",
    "SharepointServerError",
    "SharepointInternalServerError",
    "SharepointServiceUnavailableError",
    "SharepointDataError",
    "SharepointTypeLookupError",
]
