"""Shared fixtures: a Flask test client with fake credentials and an empty pending-mint store."""

import hashlib
import hmac
from unittest.mock import patch

import pytest

from mint_relay import app as app_module
from mint_relay.config import Config
from mint_relay.pending import PendingMintStore

XSOLLA_KEY = "xsolla-test-key"
USER_ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def sign(body, key=XSOLLA_KEY):
    """Authorization header value Xsolla would send for body."""
    return "Signature " + hmac.new(key.encode(), body, hashlib.sha1).hexdigest()


@pytest.fixture
def credentials():
    with patch.multiple(
        Config,
        XSOLLA_API_KEY=XSOLLA_KEY,
        XSOLLA_MERCHANT_ID="12345",
        XSOLLA_PROJECT_ID="67890",
        PINATA_API_KEY="pinata-key",
        PINATA_SECRET_KEY="pinata-secret",
    ):
        yield


@pytest.fixture
def pending():
    store = PendingMintStore()
    with patch.object(app_module, "pending_mints", store):
        yield store


@pytest.fixture
def client(credentials, pending):
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c
