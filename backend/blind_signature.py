"""
RSA Blind Signature Primitives

Implements the holder side of Chaum's blind signature protocol over textbook
RSA, plus the single issuer-side operation needed to exercise it:

  1. Holder draws a random 16-byte token and hashes it with SHA-512
  2. Holder blinds the digest:      m' = m * r^e mod n
  3. Issuer signs the blinded value: s' = m'^d mod n
  4. Holder unblinds:               s  = s' * r^-1 mod n
  5. Anyone verifies:               s^e mod n == m

The issuer never sees m, so it cannot link the final (token, signature)
credential to the signing request that produced it.
"""

import json

from Crypto.Hash import SHA512
from Crypto.Random import get_random_bytes

from codec import bytes_to_hex, hex_to_bytes, int_to_hex, hex_to_int
from modmath import modpow, modinv


TOKEN_SIZE = 16  # bytes
DIGEST_SIZE = SHA512.digest_size  # 64 bytes
BLINDING_FACTOR_SIZE = 256  # bytes, ~2048 bits


# ---------------------------------------------------------------------------
# Holder-side values
# ---------------------------------------------------------------------------

def generate_token(random_bytes=get_random_bytes) -> bytes:
    """Generate a random 16-byte token (the holder's secret)."""
    return random_bytes(TOKEN_SIZE)


def hash_token(token: bytes) -> bytes:
    """SHA-512 digest of the token."""
    return SHA512.new(token).digest()


def digest_to_int(digest: bytes) -> int:
    return int.from_bytes(digest, "big")


def generate_blinding_factor(random_bytes=get_random_bytes) -> int:
    """
    Draw a blinding factor r from 256 random bytes.

    r is not reduced modulo n: the space is far larger than any realistic
    modulus, and blind() rejects the degenerate r = 0 mod n.
    """
    return int.from_bytes(random_bytes(BLINDING_FACTOR_SIZE), "big")


# ---------------------------------------------------------------------------
# Protocol arithmetic
# ---------------------------------------------------------------------------

def blind(m: int, r: int, e: int, n: int) -> int:
    """
    Blind message m with factor r under public key (e, n).

    blinded = m * r^e mod n
    """
    if not 0 <= m < n:
        raise ValueError("message must lie in [0, n); the modulus is too small")
    if r % n == 0:
        raise ValueError("blinding factor is a multiple of the modulus")
    return (m * modpow(r, e, n)) % n


def unblind(blind_sig: int, r: int, n: int) -> int:
    """
    Remove the blinding factor from an issuer signature.

    sig = blind_sig * r^-1 mod n. Raises NotInvertible if gcd(r, n) != 1.
    """
    r_inv = modinv(r, n)
    return (blind_sig * r_inv) % n


def verify(m: int, signature: int, e: int, n: int) -> bool:
    """Check signature^e mod n == m. A mismatch is a result, not an error."""
    return modpow(signature, e, n) == m


def raw_sign(m: int, d: int, n: int) -> int:
    """
    Issuer-side textbook RSA signature: m^d mod n.

    The issuer never sees the unblinded message.
    """
    if m < 0 or m >= n:
        raise ValueError("message out of range for modulus")
    return modpow(m, d, n)


def verify_credential(token: bytes, signature: int, e: int, n: int) -> bool:
    """Verify a (token, signature) credential against public key (e, n)."""
    return verify(digest_to_int(hash_token(token)), signature, e, n)


# ---------------------------------------------------------------------------
# Serialization helpers (for export / transport)
# ---------------------------------------------------------------------------

def serialize_credential(token: bytes, signature: int) -> dict:
    """Serialize a (token, signature) credential as hex text fields."""
    return {
        "token": bytes_to_hex(token),
        "signature": int_to_hex(signature),
    }


def deserialize_credential(data: dict) -> tuple:
    """Deserialize a credential dict back to (token_bytes, signature_int)."""
    token = hex_to_bytes(data["token"])
    sig = hex_to_int(data["signature"])
    return token, sig


def credential_json(token: bytes, signature: int) -> str:
    return json.dumps(serialize_credential(token, signature))
