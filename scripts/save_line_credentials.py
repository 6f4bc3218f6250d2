"""Store a tenant's LINE channel credentials in the encrypted vault.

Usage:
    python scripts/save_line_credentials.py TENANT_ID --access-token ... --channel-secret ...

The access token is checked against the LINE API first; the bot's user id
returned there becomes the channel id used to route webhooks. Pass
``--channel-id`` to skip the check.
"""

from __future__ import annotations

import argparse
import sys

from chapter_bot.config import get_settings
from chapter_bot.line_client import LineApiError, LineClient
from chapter_bot.logging_config import configure_logging
from chapter_bot.vault import rotate_tenant_credentials, save_credentials


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("tenant_id")
    parser.add_argument("--access-token")
    parser.add_argument("--channel-secret")
    parser.add_argument("--channel-id", help="Bot user id; looked up from the access token when omitted")
    parser.add_argument(
        "--rotate-only",
        action="store_true",
        help="Re-encrypt the tenant's existing rows under the current key and exit",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = _parse_args(argv)

    if args.rotate_only:
        rotated = rotate_tenant_credentials(args.tenant_id)
        print(f"Re-encrypted {rotated} credential row(s).")
        return 0

    if not args.access_token or not args.channel_secret:
        print("--access-token and --channel-secret are required.", file=sys.stderr)
        return 2

    channel_id = args.channel_id
    if not channel_id:
        with LineClient(access_token=args.access_token, base_url=get_settings().line_api_base) as client:
            try:
                channel_id = client.get_bot_info().get("userId")
            except LineApiError as exc:
                print(f"LINE rejected the access token: {exc}", file=sys.stderr)
                return 1
        if not channel_id:
            print("LINE did not return a bot user id.", file=sys.stderr)
            return 1

    save_credentials(
        args.tenant_id,
        access_token=args.access_token,
        channel_secret=args.channel_secret,
        channel_id=channel_id,
    )
    print(f"Saved LINE credentials for tenant {args.tenant_id} (bot {channel_id}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
