"""
Blind Token Issuer REST API

A minimal textbook-RSA signing service for the holder client:

    GET  /pkey        — Issuer public key as {"e": hex, "n": hex}
    POST /sign        — Blind-sign {"m": hex}, returns {"s": hex}
    POST /verify      — Check a {"token": hex, "signature": hex} credential
    GET  /api/health  — Health check

The private key is loaded from a PEM file; generating or rotating it is out of
scope for this service.
"""

import os
from pathlib import Path

from flask import Flask, request, jsonify
from flask_cors import CORS
from Crypto.PublicKey import RSA

from blind_signature import raw_sign, verify_credential
from codec import MalformedHex, hex_to_bytes, hex_to_int, int_to_hex

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

KEY_PATH = Path(os.environ.get("ISSUER_KEY_PATH", "private.pem"))

app = Flask(__name__)
CORS(app)

_issuer_key = None


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

def load_private_key(path) -> RSA.RsaKey:
    key = RSA.import_key(Path(path).read_bytes())
    if not key.has_private():
        raise ValueError(f"{path} does not contain an RSA private key")
    return key


def initialize(key: RSA.RsaKey = None):
    global _issuer_key
    _issuer_key = key if key is not None else load_private_key(KEY_PATH)
    print(f"[issuer] Loaded {_issuer_key.size_in_bits()}-bit RSA key.")


def get_issuer_key() -> RSA.RsaKey:
    if _issuer_key is None:
        raise RuntimeError("Issuer key not loaded. Run initialize() first.")
    return _issuer_key


def _read_json() -> dict:
    # Browser clients post JSON without a content type
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Issuer API
# ---------------------------------------------------------------------------

@app.route("/pkey", methods=["GET"])
def api_public_key():
    """Return the issuer's public exponent and modulus as hex."""
    try:
        key = get_issuer_key()
    except RuntimeError as e:
        return jsonify({"error": str(e)}), 503
    return jsonify({"e": int_to_hex(key.e), "n": int_to_hex(key.n)})


@app.route("/sign", methods=["POST"])
def api_sign():
    """
    Blind-sign a message.

    Request JSON:
      { "m": str }   # blinded message, hex

    Response JSON (success):
      { "s": str }   # blind signature, hex

    Response JSON (failure):
      { "error": str }
    """
    m_hex = _read_json().get("m", "")
    if not isinstance(m_hex, str):
        return jsonify({"error": "m must be a hex string"}), 400
    m_hex = m_hex.strip()
    if not m_hex:
        return jsonify({"error": "m is required"}), 400

    try:
        m = hex_to_int(m_hex)
    except MalformedHex:
        return jsonify({"error": "m is not a hex integer"}), 400

    try:
        key = get_issuer_key()
    except RuntimeError as e:
        return jsonify({"error": str(e)}), 503

    try:
        s = raw_sign(m, key.d, key.n)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"s": int_to_hex(s)})


@app.route("/verify", methods=["POST"])
def api_verify():
    """
    Verify a holder credential.

    Request JSON:
      { "token": str, "signature": str }   # both hex
    """
    data = _read_json()
    token_hex = str(data.get("token", "")).strip()
    sig_hex = str(data.get("signature", "")).strip()

    if not token_hex or not sig_hex:
        return jsonify({"valid": False, "error": "token and signature are required"}), 400

    try:
        token = hex_to_bytes(token_hex)
        signature = hex_to_int(sig_hex)
    except MalformedHex as e:
        return jsonify({"valid": False, "error": f"Malformed credential: {e}"}), 400

    try:
        key = get_issuer_key()
    except RuntimeError as e:
        return jsonify({"valid": False, "error": str(e)}), 503
    return jsonify({"valid": verify_credential(token, signature, key.e, key.n)})


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.route("/api/health", methods=["GET"])
def api_health():
    return jsonify({"status": "ok", "service": "issuer", "key_loaded": _issuer_key is not None})


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    initialize()
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("DEBUG", "false").lower() == "true"
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    main()
