"""
Google Drive OAuth constants
"""

# Loopback callback listener
CALLBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/callback"

# Grant types
GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
GRANT_DEVICE_CODE = "urn:ietf:params:oauth:grant-type:device_code"

# Refresh the access token when it expires within this many seconds
REFRESH_MARGIN_SECONDS = 5 * 60

# Device flow polling
DEFAULT_POLL_INTERVAL = 5
SLOW_DOWN_STEP = 1

# Storage kinds reported to the user
STORAGE_SECURE = "secure"
STORAGE_FILE = "file"

# Flow selection
METHOD_AUTO = "auto"
METHOD_LOCALHOST = "localhost"
METHOD_DEVICE = "device"
FLOW_METHODS = (METHOD_AUTO, METHOD_LOCALHOST, METHOD_DEVICE)

# Command shown to the user whenever re-authentication is needed
INIT_COMMAND = "lighthouse-auth init"
