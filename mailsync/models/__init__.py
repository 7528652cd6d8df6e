from .account import Account, SyncStatus
from .base import Base
from .email import Email
from .folder_cursor import FolderCursor
from .sync_log import SyncLog
from .webhook_log import WebhookLog

__all__ = [
    "Base",
    "Account",
    "Email",
    "FolderCursor",
    "SyncLog",
    "SyncStatus",
    "WebhookLog",
]
