"""
HTTP client for the issuing service.

  GET  /pkey  -> {"e": hex, "n": hex}
  POST /sign  {"m": hex} -> {"s": hex}

Transport and decoding failures are raised as ExternalCallFailure. The client
never retries; that decision belongs to the caller.
"""

import requests

from codec import MalformedHex, hex_to_int, int_to_hex

DEFAULT_TIMEOUT = 10  # seconds


class ExternalCallFailure(RuntimeError):
    """The issuer was unreachable or answered with malformed data."""


class IssuerClient:
    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT, http=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # Only a session created here is closed by close()
        self._owns_http = http is None
        self.http = requests.Session() if http is None else http

    def close(self):
        if self._owns_http:
            self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _decode(self, response, *keys) -> list:
        try:
            response.raise_for_status()
            payload = response.json()
            return [hex_to_int(str(payload[key])) for key in keys]
        except (ValueError, KeyError, TypeError) as e:
            # requests.JSONDecodeError is both a ValueError and a RequestException
            kind = "bad integer" if isinstance(e, MalformedHex) else "malformed response"
            raise ExternalCallFailure(f"issuer sent a {kind}: {e}") from e
        except requests.RequestException as e:
            raise ExternalCallFailure(f"issuer returned an error: {e}") from e

    def fetch_public_key(self) -> tuple:
        """Return the issuer's public key as (e, n)."""
        try:
            response = self.http.get(self._url("pkey"), timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalCallFailure(f"could not reach issuer: {e}") from e
        e, n = self._decode(response, "e", "n")
        return e, n

    def sign(self, blinded: int) -> int:
        """Send a blinded message and return the issuer's blind signature."""
        try:
            response = self.http.post(
                self._url("sign"),
                json={"m": int_to_hex(blinded)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalCallFailure(f"could not reach issuer: {e}") from e
        (s,) = self._decode(response, "s")
        return s
