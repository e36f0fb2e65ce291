import os
import platform
from pathlib import Path

from config.loader import get_config_loader

# Get the config loader instance
config = get_config_loader()


def _default_config_dir() -> str:
    """Per-user configuration directory for the credential file"""
    home = Path.home()
    if platform.system() == "Windows":
        base = Path(os.environ.get("APPDATA") or home / "AppData" / "Roaming")
        return str(base / ".config" / "lighthouse-cli")
    return str(home / ".config" / "lighthouse-cli")


# Logging
LOG_LEVEL = config.get("LOG_LEVEL", "warning")
DEBUG_LOG_FILE = config.get("LIGHTHOUSE_DEBUG_LOG", "lighthouse_auth_debug.log")

# OAuth client credentials (Google Cloud console -> OAuth client ID -> Desktop app)
GOOGLE_CLIENT_ID = config.get("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = config.get("GOOGLE_CLIENT_SECRET", "")

# OAuth provider endpoints
AUTHORIZATION_ENDPOINT = config.get("OAUTH_AUTHORIZATION_ENDPOINT", "https://accounts.google.com/o/oauth2/v2/auth")
TOKEN_ENDPOINT = config.get("OAUTH_TOKEN_ENDPOINT", "https://oauth2.googleapis.com/token")
DEVICE_AUTHORIZATION_ENDPOINT = config.get("OAUTH_DEVICE_ENDPOINT", "https://oauth2.googleapis.com/device/code")
REVOKE_ENDPOINT = config.get("OAUTH_REVOKE_ENDPOINT", "https://oauth2.googleapis.com/revoke")

# Scopes requested for Drive access
SCOPES = config.get_list("OAUTH_SCOPES", [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
])

# Timeouts (seconds)
OAUTH_CALLBACK_TIMEOUT = config.get("OAUTH_CALLBACK_TIMEOUT", 300)
HTTP_TIMEOUT = config.get("HTTP_TIMEOUT", 30.0)

# Token storage
CONFIG_DIR = config.get("LIGHTHOUSE_CONFIG_DIR", _default_config_dir())
TOKEN_FILE_NAME = "tokens.json"
KEYRING_SERVICE_NAME = config.get("LIGHTHOUSE_KEYRING_SERVICE", "lighthouse-cli")
KEYRING_ENABLED = config.get("LIGHTHOUSE_KEYRING_ENABLED", True)
