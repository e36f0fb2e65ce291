"""Status display functionality for CLI"""

from rich.table import Table

from drive_oauth.constants import STORAGE_SECURE
from drive_oauth.models import AuthStatus


def format_expiry(status: AuthStatus) -> str:
    """Human readable time until expiry"""
    if status.expires_at is None:
        return "Unknown"
    if status.is_expired:
        return "[red]Expired[/red] (will refresh on next use)"
    minutes = status.minutes_until_expiry or 0
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def show_auth_status(status: AuthStatus, console):
    """
    Display authentication status

    Args:
        status: Status projection from OAuthManager.get_auth_status()
        console: Rich console for output
    """
    if not status.authenticated:
        console.print("[yellow]Not authenticated.[/yellow] Run [bold]lighthouse-auth init[/bold] to sign in.")
        return

    table = Table(title="Google Drive Authentication")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Account", status.email or "Unknown")
    table.add_row("Expires At", status.expires_at.strftime("%Y-%m-%d %H:%M:%S") if status.expires_at else "Unknown")
    table.add_row("Time Until Expiry", format_expiry(status))
    table.add_row(
        "Storage",
        "System keyring" if status.storage_kind == STORAGE_SECURE else "Protected file",
    )
    if status.last_refreshed_at:
        table.add_row("Last Refreshed", status.last_refreshed_at.strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row("Scopes", "\n".join(status.scopes) or "None")

    console.print(table)
