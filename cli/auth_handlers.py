"""Authentication command handlers for CLI"""

import asyncio
import json

from rich.prompt import Confirm

from drive_oauth import OAuthManager
from drive_oauth.constants import METHOD_AUTO, METHOD_DEVICE, METHOD_LOCALHOST, STORAGE_SECURE
from cli.status_display import format_expiry, show_auth_status


def handle_init(oauth: OAuthManager, args, console) -> int:
    """
    Sign in interactively and store the credential

    Returns:
        Process exit code
    """
    if oauth.is_authenticated() and not args.force:
        email = oauth.get_user_email() or "an unknown account"
        if not Confirm.ask(f"Already signed in as {email}. Sign in again?", default=False, console=console):
            console.print("Keeping the existing session.")
            return 0

    if args.device:
        method = METHOD_DEVICE
    elif args.localhost:
        method = METHOD_LOCALHOST
    else:
        method = METHOD_AUTO

    record = asyncio.run(oauth.initialize(method))

    console.print(f"\n[green]✓ Signed in{' as ' + record.email if record.email else ''}[/green]")
    if oauth.store.last_storage_kind == STORAGE_SECURE:
        console.print("[dim]Credentials saved to the system keyring (file copy kept as backup).[/dim]")
    else:
        console.print(f"[dim]Credentials saved to {oauth.store.token_path} (system keyring unavailable).[/dim]")
    return 0


def handle_status(oauth: OAuthManager, args, console) -> int:
    status = oauth.get_auth_status()
    if args.json:
        console.print_json(json.dumps(status.to_dict()))
    else:
        show_auth_status(status, console)
    return 0 if status.authenticated else 1


def handle_logout(oauth: OAuthManager, args, console) -> int:
    """Revoke (unless told not to) and delete stored credentials"""
    if not args.force and not Confirm.ask("Sign out and delete stored credentials?", default=True, console=console):
        return 0

    existed = asyncio.run(oauth.logout(revoke=not args.no_revoke))
    if existed:
        console.print("[green]✓ Signed out, stored credentials removed[/green]")
    else:
        console.print("No stored credentials found.")
    return 0


def handle_refresh(oauth: OAuthManager, args, console) -> int:
    asyncio.run(oauth.refresh())
    status = oauth.get_auth_status()
    console.print(f"[green]✓ Access token refreshed[/green] (valid for {format_expiry(status)})")
    return 0


def handle_token(oauth: OAuthManager, args, console) -> int:
    """Print a currently valid access token for scripts"""
    token = asyncio.run(oauth.get_valid_access_token())
    console.print(token, soft_wrap=True, highlight=False, markup=False)
    return 0
