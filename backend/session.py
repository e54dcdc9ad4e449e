"""
Holder Session — Blind Signature State Machine

Drives one holder through the protocol, in order:

  fetch key -> token -> digest -> blinding factor -> blind
            -> sign (issuer round trip) -> unblind -> verify -> export

Every produced value is written once, both in memory and to the field store,
under the field names below. The only overwrite allowed is starting a fresh
token, and only until the issuer has returned a blind signature. From that
point the session is frozen: no further token, blinding or signing step is
accepted, including after a restart (see restore()).
"""

import enum
from pathlib import Path

from Crypto.Random import get_random_bytes

import blind_signature
import database
from codec import bytes_to_hex, hex_to_bytes, int_to_hex, hex_to_int

PUBLIC_EXPONENT = "public-exponent"
MODULUS = "modulus"
TOKEN = "token"
TOKEN_HASH = "token-hash"
BLINDING_OFFSET = "blinding-offset"
BLINDED_MESSAGE = "blinded-message"
BLIND_SIGNATURE = "blind-signature"
SIGNATURE = "signature"

FIELDS = (
    PUBLIC_EXPONENT,
    MODULUS,
    TOKEN,
    TOKEN_HASH,
    BLINDING_OFFSET,
    BLINDED_MESSAGE,
    BLIND_SIGNATURE,
    SIGNATURE,
)

# Derived from the token; discarded when a fresh token is drawn
TOKEN_DERIVED = (TOKEN_HASH, BLINDING_OFFSET, BLINDED_MESSAGE)

DEFAULT_EXPORT_NAME = "credentials.json"


class SessionState(enum.Enum):
    INIT = "init"
    KEY_FETCHED = "key-fetched"
    TOKEN_GENERATED = "token-generated"
    DIGESTED = "digested"
    BLINDING_FACTOR_GENERATED = "blinding-factor-generated"
    BLINDED = "blinded"
    SIGNED = "signed"
    UNBLINDED = "unblinded"
    VERIFIED = "verified"


class SessionError(RuntimeError):
    pass


class MissingField(SessionError):
    def __init__(self, name: str):
        super().__init__(f"'{name}' has not been produced yet")
        self.name = name


class FieldAlreadySet(SessionError):
    def __init__(self, name: str):
        super().__init__(f"'{name}' is already set; generate a new token to start over")
        self.name = name


class SessionFrozen(SessionError):
    """A signing-path step was attempted after a blind signature was obtained."""


class HolderSession:
    """
    One holder's pass through the blind signature protocol.

    Parameters
    ----------
    issuer
        Object with fetch_public_key() -> (e, n) and sign(blinded) -> int,
        normally an issuer_client.IssuerClient.
    random_bytes
        Secure random source, called with a byte count.
    """

    def __init__(self, issuer, random_bytes=get_random_bytes):
        self.issuer = issuer
        self.random_bytes = random_bytes
        self.fields = {}
        self.signed = False
        self.verified = None

    # -----------------------------------------------------------------------
    # Field bookkeeping
    # -----------------------------------------------------------------------

    def _get(self, name: str) -> str:
        value = self.fields.get(name)
        if value is None:
            raise MissingField(name)
        return value

    def _get_int(self, name: str) -> int:
        return hex_to_int(self._get(name))

    def _write(self, name: str, value: str):
        if name in self.fields:
            raise FieldAlreadySet(name)
        database.set_field(name, value)
        self.fields[name] = value

    def _require_unsigned(self, action: str):
        if self.signed:
            raise SessionFrozen(f"cannot {action}: a signature was already obtained for this session")

    @property
    def public_key(self) -> tuple:
        return self._get_int(PUBLIC_EXPONENT), self._get_int(MODULUS)

    @property
    def state(self) -> SessionState:
        if self.verified is not None:
            return SessionState.VERIFIED
        for name, state in (
            (SIGNATURE, SessionState.UNBLINDED),
            (BLIND_SIGNATURE, SessionState.SIGNED),
            (BLINDED_MESSAGE, SessionState.BLINDED),
            (BLINDING_OFFSET, SessionState.BLINDING_FACTOR_GENERATED),
            (TOKEN_HASH, SessionState.DIGESTED),
            (TOKEN, SessionState.TOKEN_GENERATED),
            (MODULUS, SessionState.KEY_FETCHED),
        ):
            if name in self.fields:
                return state
        return SessionState.INIT

    # -----------------------------------------------------------------------
    # Reload
    # -----------------------------------------------------------------------

    def restore(self):
        """
        Reload persisted fields.

        A stored blind signature or signature freezes the session. When a
        signature is present it is verified straight away and the outcome is
        returned; otherwise returns None.
        """
        stored = database.load_fields()
        self.fields = {name: stored[name] for name in FIELDS if name in stored}
        self.signed = BLIND_SIGNATURE in self.fields or SIGNATURE in self.fields
        self.verified = None

        if SIGNATURE in self.fields:
            print("[holder] Stored signature found; session is frozen.")
            return self.verify_signature()
        return None

    # -----------------------------------------------------------------------
    # Protocol steps
    # -----------------------------------------------------------------------

    def fetch_public_key(self) -> tuple:
        """
        Fetch (e, n) from the issuer once; later calls return the stored key.

        A half-stored key (one of the two fields) is replaced by a fresh fetch.
        """
        if PUBLIC_EXPONENT in self.fields and MODULUS in self.fields:
            return self.public_key
        e, n = self.issuer.fetch_public_key()
        key = {PUBLIC_EXPONENT: int_to_hex(e), MODULUS: int_to_hex(n)}
        database.set_fields(key)
        self.fields.update(key)
        return e, n

    def generate_token(self) -> bytes:
        """Draw a fresh token, discarding anything derived from the previous one."""
        self._require_unsigned("generate a token")

        stale = [name for name in (TOKEN,) + TOKEN_DERIVED if name in self.fields]
        for name in stale:
            del self.fields[name]
        database.delete_fields(stale)

        token = blind_signature.generate_token(self.random_bytes)
        self._write(TOKEN, bytes_to_hex(token))
        return token

    def hash_token(self) -> bytes:
        self._require_unsigned("hash a token")
        token = hex_to_bytes(self._get(TOKEN))
        digest = blind_signature.hash_token(token)
        self._write(TOKEN_HASH, bytes_to_hex(digest))
        return digest

    def generate_blinding_factor(self) -> int:
        self._require_unsigned("draw a blinding factor")
        self._get(TOKEN_HASH)
        r = blind_signature.generate_blinding_factor(self.random_bytes)
        self._write(BLINDING_OFFSET, int_to_hex(r))
        return r

    def blind_message(self) -> int:
        self._require_unsigned("blind a message")
        m = self._get_int(TOKEN_HASH)
        r = self._get_int(BLINDING_OFFSET)
        e, n = self.public_key
        blinded = blind_signature.blind(m, r, e, n)
        self._write(BLINDED_MESSAGE, int_to_hex(blinded))
        return blinded

    def hash_and_blind(self) -> int:
        self.hash_token()
        self.generate_blinding_factor()
        return self.blind_message()

    def sign_blinded_message(self) -> int:
        """
        Ask the issuer to sign the blinded message.

        On success the session is frozen for good, even if storing the blind
        signature then fails. If the issuer call fails the exception
        propagates and the session stays unsigned.
        """
        self._require_unsigned("request a signature")
        blinded = self._get_int(BLINDED_MESSAGE)

        blind_sig = self.issuer.sign(blinded)

        # No further signing for this session
        self.signed = True
        self._write(BLIND_SIGNATURE, int_to_hex(blind_sig))
        return blind_sig

    def unblind_signature(self) -> int:
        """Recover the signature; raises modmath.NotInvertible if gcd(r, n) != 1."""
        blind_sig = self._get_int(BLIND_SIGNATURE)
        r = self._get_int(BLINDING_OFFSET)
        _, n = self.public_key
        signature = blind_signature.unblind(blind_sig, r, n)
        self._write(SIGNATURE, int_to_hex(signature))
        return signature

    def verify_signature(self) -> bool:
        m = self._get_int(TOKEN_HASH)
        s = self._get_int(SIGNATURE)
        e, n = self.public_key
        self.verified = blind_signature.verify(m, s, e, n)
        return self.verified

    def sign_and_unblind(self) -> bool:
        self.sign_blinded_message()
        self.unblind_signature()
        return self.verify_signature()

    # -----------------------------------------------------------------------
    # Export
    # -----------------------------------------------------------------------

    def export_credentials(self, path=DEFAULT_EXPORT_NAME) -> Path:
        """Write {token, signature} as JSON and return the file path."""
        token = hex_to_bytes(self._get(TOKEN))
        signature = self._get_int(SIGNATURE)
        path = Path(path)
        path.write_text(blind_signature.credential_json(token, signature))
        return path
