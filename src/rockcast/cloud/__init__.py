"""Google Drive mirror for episodes, metadata and playback state."""

from rockcast.cloud.auth import AuthToken, GoogleAuthService, TokenStore
from rockcast.cloud.drive import DriveClient, DriveFile
from rockcast.cloud.mirror import CloudMirror, group_range
from rockcast.cloud.query import DriveQuery

__all__ = [
    "AuthToken",
    "CloudMirror",
    "DriveClient",
    "DriveFile",
    "DriveQuery",
    "GoogleAuthService",
    "TokenStore",
    "group_range",
]
