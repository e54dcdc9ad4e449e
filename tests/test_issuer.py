"""
Integration tests for the issuer Flask API using a test client.
"""

import json

import pytest

import issuer
from blind_signature import (
    blind,
    digest_to_int,
    generate_blinding_factor,
    generate_token,
    hash_token,
    unblind,
)
from codec import hex_to_int, int_to_hex


# ---------------------------------------------------------------------------
# Health / key
# ---------------------------------------------------------------------------

def test_health(app_client):
    r = app_client.get('/api/health')
    assert r.status_code == 200
    data = r.get_json()
    assert data["status"] == "ok"
    assert data["key_loaded"]


def test_public_key(app_client, rsa_key):
    r = app_client.get('/pkey')
    assert r.status_code == 200
    data = r.get_json()
    assert data["e"] == "10001"
    assert hex_to_int(data["n"]) == rsa_key.n


def test_public_key_before_initialize(app_client):
    issuer._issuer_key = None
    r = app_client.get('/pkey')
    assert r.status_code == 503


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

def test_sign(app_client, rsa_key):
    m = 123456789
    r = app_client.post('/sign', json={"m": int_to_hex(m)})
    assert r.status_code == 200
    assert hex_to_int(r.get_json()["s"]) == pow(m, rsa_key.d, rsa_key.n)


def test_sign_without_content_type(app_client, rsa_key):
    body = json.dumps({"m": "ff"})
    r = app_client.post('/sign', data=body, content_type="text/plain")
    assert r.status_code == 200
    assert hex_to_int(r.get_json()["s"]) == pow(255, rsa_key.d, rsa_key.n)


def test_blind_signing_round_trip(app_client, rsa_key):
    token = generate_token()
    m = digest_to_int(hash_token(token))
    r = generate_blinding_factor()
    blinded = blind(m, r, rsa_key.e, rsa_key.n)

    resp = app_client.post('/sign', json={"m": int_to_hex(blinded)})
    sig = unblind(hex_to_int(resp.get_json()["s"]), r, rsa_key.n)

    resp = app_client.post('/verify', json={"token": token.hex(), "signature": int_to_hex(sig)})
    assert resp.get_json()["valid"] is True


@pytest.mark.parametrize("body", [{}, {"m": ""}, {"m": "xyz"}, {"other": "ff"}])
def test_sign_rejects_bad_input(app_client, body):
    r = app_client.post('/sign', json=body)
    assert r.status_code == 400
    assert "error" in r.get_json()


@pytest.mark.parametrize("m", [123, 1.5, ["ff"], {"m": "ff"}, True])
def test_sign_rejects_non_string_message(app_client, m):
    r = app_client.post('/sign', json={"m": m})
    assert r.status_code == 400
    assert "string" in r.get_json()["error"]


def test_sign_rejects_non_json(app_client):
    r = app_client.post('/sign', data="not json", content_type="text/plain")
    assert r.status_code == 400


def test_sign_rejects_message_not_below_modulus(app_client, rsa_key):
    r = app_client.post('/sign', json={"m": int_to_hex(rsa_key.n)})
    assert r.status_code == 400


# ---------------------------------------------------------------------------
# Credential verification
# ---------------------------------------------------------------------------

def test_verify_rejects_forged_signature(app_client):
    token = generate_token()
    r = app_client.post('/verify', json={"token": token.hex(), "signature": "1234"})
    assert r.status_code == 200
    assert r.get_json()["valid"] is False


def test_verify_missing_fields(app_client):
    r = app_client.post('/verify', json={"token": "00"})
    assert r.status_code == 400
    assert r.get_json()["valid"] is False


def test_verify_malformed_token(app_client):
    r = app_client.post('/verify', json={"token": "abc", "signature": "ff"})
    assert r.status_code == 400
    assert "Malformed" in r.get_json()["error"]


# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------

class TestKeyLoading:
    def test_load_private_key_from_pem(self, rsa_key, tmp_path):
        path = tmp_path / "private.pem"
        path.write_bytes(rsa_key.export_key())
        key = issuer.load_private_key(path)
        assert key.n == rsa_key.n
        assert key.d == rsa_key.d

    def test_public_key_file_rejected(self, rsa_key, tmp_path):
        path = tmp_path / "public.pem"
        path.write_bytes(rsa_key.publickey().export_key())
        with pytest.raises(ValueError):
            issuer.load_private_key(path)

    def test_initialize_reads_key_path(self, rsa_key, tmp_path, monkeypatch):
        path = tmp_path / "private.pem"
        path.write_bytes(rsa_key.export_key())
        monkeypatch.setattr(issuer, "KEY_PATH", path)
        issuer.initialize()
        assert issuer.get_issuer_key().n == rsa_key.n
        issuer._issuer_key = None
