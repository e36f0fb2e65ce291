"""CLI entry point and argument parsing"""

import argparse
import sys
import traceback

from rich.console import Console
from rich.markup import escape

from drive_oauth import OAuthManager
from drive_oauth.errors import AuthError
from cli.auth_handlers import handle_init, handle_logout, handle_refresh, handle_status, handle_token
from cli.debug_setup import setup_logging


console = Console()

COMMANDS = {
    "init": handle_init,
    "status": handle_status,
    "logout": handle_logout,
    "refresh": handle_refresh,
    "token": handle_token,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lighthouse-auth",
        description="Google Drive authentication for Lighthouse",
    )
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Sign in with your Google account")
    method = init_parser.add_mutually_exclusive_group()
    method.add_argument("--device", action="store_true", help="Use the device code flow (no local browser needed)")
    method.add_argument("--localhost", action="store_true", help="Use the browser flow only, never fall back")
    init_parser.add_argument("--force", "-f", action="store_true", help="Sign in again without asking")

    status_parser = subparsers.add_parser("status", help="Show authentication status")
    status_parser.add_argument("--json", action="store_true", help="Print status as JSON")

    logout_parser = subparsers.add_parser("logout", help="Sign out and delete stored credentials")
    logout_parser.add_argument("--no-revoke", action="store_true", help="Only delete local credentials")
    logout_parser.add_argument("--force", "-f", action="store_true", help="Do not ask for confirmation")

    subparsers.add_parser("refresh", help="Force an access token refresh")
    subparsers.add_parser("token", help="Print a valid access token")
    return parser


def main(argv=None) -> int:
    """Entry point for the CLI"""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    try:
        oauth = OAuthManager(console=console)
        return COMMANDS[args.command](oauth, args, console)
    except AuthError as e:
        console.print(f"[red]✗ {escape(e.message)}[/red]")
        if e.hint:
            console.print(escape(e.hint))
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        console.print(f"\n[red]Fatal error:[/red] {escape(str(e))}")
        if args.debug:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
