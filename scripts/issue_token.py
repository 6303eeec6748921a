"""
Issue a signed development token using the configured JWT settings.

Usage:
    JWT_SECRET=... python scripts/issue_token.py --subject user-1 --roles admin,reader
"""
import argparse
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from admission.app.core.config import settings
from admission.app.services.token_issuer import TokenIssuer


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Issue a signed access or refresh token")
    parser.add_argument("--subject", required=True, help="Subject id to embed in the token")
    parser.add_argument("--roles", default="", help="Comma separated role names")
    parser.add_argument("--kind", choices=["access", "refresh"], default="access")
    parser.add_argument("--ttl", type=int, default=None, help="Lifetime in seconds")
    parser.add_argument("--session-id", default=None, help="Bind the token to a session id")
    args = parser.parse_args(argv)

    if not settings.jwt_secret:
        print("JWT_SECRET is not set", file=sys.stderr)
        return 1

    issuer = TokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        access_ttl=settings.jwt_access_ttl,
        refresh_ttl=settings.jwt_refresh_ttl,
    )
    if args.kind == "refresh":
        token = issuer.issue_refresh_token(args.subject, session_id=args.session_id, ttl=args.ttl)
    else:
        roles = [r.strip() for r in args.roles.split(",") if r.strip()]
        token = issuer.issue_access_token(
            args.subject, roles=roles, session_id=args.session_id, ttl=args.ttl
        )
    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
