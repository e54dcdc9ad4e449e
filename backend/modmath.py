"""
Modular arithmetic for textbook RSA blinding.

Python integers are unbounded, so the only work here is the two engines the
blinding protocol is built on:

  modpow  -- a^e mod n by right-to-left square-and-multiply
  modinv  -- a^-1 mod n by the iterative extended Euclidean algorithm

Both are pure functions. modinv raises NotInvertible instead of returning a
value when gcd(a, n) != 1.
"""


class NotInvertible(ArithmeticError):
    """Raised when a modular inverse is requested for non-coprime inputs."""

    def __init__(self, a: int, n: int, gcd: int):
        super().__init__(f"{a} is not invertible modulo {n} (gcd={gcd})")
        self.a = a
        self.n = n
        self.gcd = gcd


def modpow(a: int, e: int, n: int) -> int:
    """Compute a^e mod n. Result is always in [0, n)."""
    if n < 1:
        raise ValueError("modulus must be positive")
    if e < 0:
        raise ValueError("exponent must be non-negative")

    result = 1 % n
    a %= n
    while e > 0:
        if e & 1:
            result = (result * a) % n
        a = (a * a) % n
        e >>= 1
    return result


def egcd(a: int, n: int) -> tuple:
    """
    Extended Euclid.

    Returns (g, x, y) with g = gcd(a, n) and a*x + n*y == g.
    """
    x, y, u, v = 0, 1, 1, 0
    while a != 0:
        q, r = divmod(n, a)
        s = x - u * q
        t = y - v * q
        n, a, x, y, u, v = a, r, u, v, s, t
    return n, x, y


def modinv(a: int, n: int) -> int:
    """Compute a^-1 mod n, normalized into [0, n)."""
    if n < 1:
        raise ValueError("modulus must be positive")

    g, x, _ = egcd(a % n, n)
    if g != 1:
        raise NotInvertible(a, n, g)
    # x may be negative
    return (x + n) % n
