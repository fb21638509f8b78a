"""
Pytest configuration for sharepointclient tests.
"""

import pytest

from sharepointclient import CookieSession, Site

from .test_utils import SERVER, SITE_NAME, DummyTransport


@pytest.fixture
def transport():
    return DummyTransport()


@pytest.fixture
def site(transport):
    return Site(
        SERVER,
        SITE_NAME,
        session=CookieSession("FedAuth=abc; rtFa=def"),
        transport=transport,
    )
