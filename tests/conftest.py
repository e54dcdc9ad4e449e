"""
pytest configuration for the blind token tests.
Adds the backend directory to sys.path and provides shared fixtures.
"""
import sys
import os
import threading
from urllib.parse import urlsplit

import pytest
import requests

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(ROOT, 'backend'))

from Crypto.PublicKey import RSA  # noqa: E402

import database  # noqa: E402
from blind_signature import raw_sign  # noqa: E402
from issuer_client import ExternalCallFailure  # noqa: E402


class MockIssuer:
    """In-process issuer holding the private exponent."""

    def __init__(self, e, d, n):
        self.e, self.d, self.n = e, d, n
        self.fetch_calls = 0
        self.sign_calls = 0
        self.fail = False

    def fetch_public_key(self):
        self.fetch_calls += 1
        return self.e, self.n

    def sign(self, blinded):
        if self.fail:
            raise ExternalCallFailure("issuer unavailable")
        self.sign_calls += 1
        return raw_sign(blinded, self.d, self.n)


class _TestResponse:
    def __init__(self, response):
        self._response = response
        self.status_code = response.status_code

    def json(self):
        data = self._response.get_json(silent=True)
        if data is None:
            raise ValueError("response body is not JSON")
        return data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FlaskTransport:
    """Routes IssuerClient requests into a Flask test client."""

    def __init__(self, client):
        self.client = client

    def get(self, url, timeout=None):
        return _TestResponse(self.client.get(urlsplit(url).path))

    def post(self, url, json=None, timeout=None):
        return _TestResponse(self.client.post(urlsplit(url).path, json=json))


@pytest.fixture(scope="session")
def rsa_key():
    return RSA.generate(1024)


@pytest.fixture
def mock_issuer(rsa_key):
    return MockIssuer(rsa_key.e, rsa_key.d, rsa_key.n)


@pytest.fixture
def isolated_db(tmp_path):
    """Each test gets its own SQLite field store."""
    database.DB_PATH = tmp_path / "test_holder.db"
    # Reset thread-local connection
    database._local = threading.local()
    database.init_db()
    yield
    database.close_connection()


@pytest.fixture
def app_client(rsa_key):
    import issuer
    issuer.initialize(rsa_key)
    issuer.app.config["TESTING"] = True
    with issuer.app.test_client() as client:
        yield client
    issuer._issuer_key = None


@pytest.fixture
def flask_transport(app_client):
    return FlaskTransport(app_client)
