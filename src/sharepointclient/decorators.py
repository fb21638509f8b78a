"""This module contains decorators for the sharepointclient package."""

import logging
from functools import wraps

from sharepointclient.exceptions import SharepointClientClosed

logger = logging.getLogger(__name__)


def use_client_session(func):
    """
    Decorator to use or create an httpx.Client session for an HttpxTransport
    if one is not already created or the existing httpx.Client is closed

    This decorator assumes it is decorating an instance method on an
    HttpxTransport object taking an ``httpx_client`` keyword argument. The
    client opened with the transport's context manager is passed when there
    is one. Otherwise a temporary client is passed and closed after the call;
    it is never stored on the transport, so concurrent calls each get their
    own. A transport that has been closed explicitly refuses to open a new
    session.
    """

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        if self.is_closed:
            raise SharepointClientClosed()
        shared_client = getattr(self, "httpx_client", None)
        if shared_client is None or shared_client.is_closed:
            logger.debug("No open httpx.Client, using a temporary one for this request")
            with self.get_http_client() as httpx_client:
                return func(self, *args, httpx_client=httpx_client, **kwargs)
        return func(self, *args, httpx_client=shared_client, **kwargs)

    return wrapper
