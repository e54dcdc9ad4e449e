"""
Hex codec for tokens, digests and the big integers exchanged with the issuer.

Bytes are written as two lowercase hex characters each. Integers use their
natural base-16 form with no padding, which is what the issuer emits.
"""

import re

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


class MalformedHex(ValueError):
    """Raised for odd-length or non-hex input."""


def bytes_to_hex(data: bytes) -> str:
    return bytes(data).hex()


def hex_to_bytes(text: str) -> bytes:
    if len(text) % 2 != 0:
        raise MalformedHex(f"odd-length hex string ({len(text)} characters)")
    if not _HEX_RE.fullmatch(text):
        raise MalformedHex("hex string contains non-hex characters")
    return bytes.fromhex(text)


def int_to_hex(value: int) -> str:
    if value < 0:
        raise ValueError("cannot hex-encode a negative integer")
    return format(value, "x")


def hex_to_int(text: str) -> int:
    digits = text[2:] if text[:2].lower() == "0x" else text
    if not digits or not _HEX_RE.fullmatch(digits):
        raise MalformedHex(f"not a hex integer: {text!r}")
    return int(digits, 16)
