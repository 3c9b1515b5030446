"""Print a staff bearer token for the admin endpoints to stdout.

Usage:
    python -m booking_backend.issue_staff_token staff@example.com [expires_minutes]
"""
import sys

from booking_backend.auth.jwt_handler import create_access_token


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if not args or not args[0].strip():
        print("Usage: python -m booking_backend.issue_staff_token EMAIL [EXPIRES_MINUTES]", file=sys.stderr)
        sys.exit(1)

    expires_minutes = None
    if len(args) > 1:
        try:
            expires_minutes = int(args[1])
        except ValueError:
            print("EXPIRES_MINUTES must be an integer.", file=sys.stderr)
            sys.exit(1)

    print(create_access_token(subject=args[0].strip().lower(), expires_minutes=expires_minutes))


if __name__ == "__main__":
    main()
