from dependency_injector import containers, providers

from mailsync.repos.account import AccountRepo
from mailsync.repos.email import EmailRepo
from mailsync.repos.folder_cursor import FolderCursorRepo
from mailsync.repos.sync_log import SyncLogRepo
from mailsync.repos.webhook_log import WebhookLogRepo


class RepoContainer(containers.DeclarativeContainer):
    account = providers.Singleton(AccountRepo)
    email = providers.Singleton(EmailRepo)
    folder_cursor = providers.Singleton(FolderCursorRepo)
    sync_log = providers.Singleton(SyncLogRepo)
    webhook_log = providers.Singleton(WebhookLogRepo)
