import argparse
from datetime import timedelta
import os
import sys

# Add project root to path
sys.path.append(os.getcwd())

from jurynow.auth.auth import Role, create_access_token


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mint a development access token. Requires JURYNOW_JWT_SECRET_KEY "
        "to match the running server."
    )
    parser.add_argument("subject", help="Juror id, requester id or admin id")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.JUROR.value,
    )
    parser.add_argument("--minutes", type=int, default=None, help="Lifetime override")
    return parser.parse_args()


if __name__ == "__main__":
    if not os.getenv("JURYNOW_JWT_SECRET_KEY"):
        print("JURYNOW_JWT_SECRET_KEY is not set; the token would not verify on a server.")
        sys.exit(1)
    args = _parse_args()
    lifetime = timedelta(minutes=args.minutes) if args.minutes else None
    print(create_access_token(args.subject, Role(args.role), expires_delta=lifetime))
