"""
Shared constants for Drive Logger.
"""

# Drive folder that holds every conversation file
FOLDER_NAME = "ChatGPT Logs"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOCUMENT_MIME_TYPE = "text/markdown"

OAUTH_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.appdata",
]
CLIENT_ID_SUFFIX = ".apps.googleusercontent.com"

DRIVE_API = "https://www.googleapis.com/drive/v3"
UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"

# Refresh this many seconds before the token really expires
TOKEN_EXPIRY_SKEW = 60
DEFAULT_EXPIRES_IN = 3600

# Named channel between observer and host
PORT_NAME = "driveLoggerPort"

# Persisted key names
KEY_CLIENT_ID = "clientId"
KEY_CLIENT_SECRET = "clientSecret"
KEY_ACCESS_TOKEN = "accessToken"
KEY_REFRESH_TOKEN = "refreshToken"
KEY_TOKEN_EXPIRY = "tokenExpiry"
FILE_ID_PREFIX = "fileId:"
BUFFER_PREFIX = "buffer:"

DEFAULT_TITLE = "ChatGPT Conversation"
NO_CONVERSATION_ID = "no-id"
