"""
Holder command line.

Each invocation resumes the session stored in HOLDER_DB and runs one step:

    blind-holder fetch-key
    blind-holder new-token
    blind-holder blind
    blind-holder sign
    blind-holder verify
    blind-holder export [-o credentials.json]
    blind-holder run        # every remaining step in order
    blind-holder status
"""

import argparse
import os
import sys

import database
from issuer_client import DEFAULT_TIMEOUT, ExternalCallFailure, IssuerClient
from modmath import NotInvertible
from session import (
    BLINDED_MESSAGE,
    DEFAULT_EXPORT_NAME,
    FIELDS,
    SIGNATURE,
    HolderSession,
    SessionError,
)

ISSUER_URL = os.environ.get("HOLDER_ISSUER_URL", "http://localhost:5000")
TIMEOUT = float(os.environ.get("HOLDER_TIMEOUT", DEFAULT_TIMEOUT))


def _report_verification(valid: bool):
    print("[holder] " + ("Valid signature" if valid else "Invalid signature"))


def cmd_status(session: HolderSession, args):
    print(f"[holder] state: {session.state.value}")
    print(f"[holder] signing frozen: {session.signed}")
    for name in FIELDS:
        value = session.fields.get(name)
        if value is not None:
            print(f"  {name}: {value}")


def cmd_fetch_key(session: HolderSession, args):
    e, n = session.fetch_public_key()
    print(f"[holder] Public key: e={e:x}, {n.bit_length()}-bit modulus")


def cmd_new_token(session: HolderSession, args):
    token = session.generate_token()
    print(f"[holder] Token: {token.hex()}")


def cmd_blind(session: HolderSession, args):
    blinded = session.hash_and_blind()
    print(f"[holder] Blinded message: {blinded:x}")


def cmd_sign(session: HolderSession, args):
    _report_verification(session.sign_and_unblind())


def cmd_verify(session: HolderSession, args):
    _report_verification(session.verify_signature())


def cmd_export(session: HolderSession, args):
    path = session.export_credentials(args.output)
    print(f"[holder] Credentials written to {path}")


def cmd_run(session: HolderSession, args):
    session.fetch_public_key()
    if not session.signed:
        # A stored blinded message is re-sent rather than re-drawn
        if BLINDED_MESSAGE not in session.fields:
            session.generate_token()
            session.hash_and_blind()
        session.sign_blinded_message()
    if SIGNATURE not in session.fields:
        session.unblind_signature()
    _report_verification(session.verify_signature())
    cmd_export(session, args)


COMMANDS = {
    "status": cmd_status,
    "fetch-key": cmd_fetch_key,
    "new-token": cmd_new_token,
    "blind": cmd_blind,
    "sign": cmd_sign,
    "verify": cmd_verify,
    "export": cmd_export,
    "run": cmd_run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blind-holder", description="Obtain a blind RSA signature on a secret token.")
    parser.add_argument("--issuer-url", default=ISSUER_URL)
    parser.add_argument("--timeout", type=float, default=TIMEOUT)
    sub = parser.add_subparsers(dest="command", required=True)
    for name in COMMANDS:
        cmd = sub.add_parser(name)
        if name in ("export", "run"):
            cmd.add_argument("-o", "--output", default=DEFAULT_EXPORT_NAME)
    return parser


def main(argv=None, issuer=None) -> int:
    args = build_parser().parse_args(argv)

    database.init_db()
    client = None
    if issuer is None:
        issuer = client = IssuerClient(args.issuer_url, timeout=args.timeout)
    session = HolderSession(issuer)

    try:
        session.restore()
        COMMANDS[args.command](session, args)
    except (SessionError, ExternalCallFailure, NotInvertible, ValueError) as e:
        print(f"[holder] error: {e}", file=sys.stderr)
        return 1
    finally:
        if client is not None:
            client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
