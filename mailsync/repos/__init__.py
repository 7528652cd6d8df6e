from .account import AccountRepo
from .email import EmailRepo
from .folder_cursor import FolderCursorRepo
from .sync_log import SyncLogRepo
from .webhook_log import WebhookLogRepo

__all__ = [
    "AccountRepo",
    "EmailRepo",
    "FolderCursorRepo",
    "SyncLogRepo",
    "WebhookLogRepo",
]
