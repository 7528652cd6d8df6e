from typing import cast

from dependency_injector import containers, providers

from mailsync.controllers.imap.connection import ImapTransport
from mailsync.controllers.imap.errors import ErrorClassifier
from mailsync.controllers.imap.lifecycle import ConnectionLifecycleManager
from mailsync.controllers.imap.normalizer import MessageNormalizer
from mailsync.controllers.imap.parser import MessageParser
from mailsync.controllers.imap.pool import ConnectionPool
from mailsync.controllers.imap.retry import RetryExecutor
from mailsync.controllers.notify.webhook import WebhookNotifier
from mailsync.controllers.realtime import RealtimeRegistry
from mailsync.controllers.sync.folder_sync import FolderSyncEngine
from mailsync.controllers.sync.orchestrator import AccountOrchestrator
from mailsync.repos.container import RepoContainer
from settings import settings


class ControllerContainer(containers.DeclarativeContainer):
    repos: RepoContainer = cast(RepoContainer, providers.DependenciesContainer())

    imap_error_classifier = providers.Singleton(ErrorClassifier, patterns=settings.imap_errors)
    imap_transport = providers.Singleton(ImapTransport)
    imap_connection_pool = providers.Singleton(
        ConnectionPool, transport=imap_transport, max_age=settings.imap.connection_max_age
    )
    imap_lifecycle_manager = providers.Singleton(ConnectionLifecycleManager, classifier=imap_error_classifier)
    imap_retry_executor = providers.Singleton(RetryExecutor, classifier=imap_error_classifier)
    imap_message_parser = providers.Singleton(MessageParser)
    imap_message_normalizer = providers.Singleton(MessageNormalizer, parser=imap_message_parser)

    webhook_notifier = providers.Singleton(WebhookNotifier, webhook_log_repo=repos.webhook_log)
    realtime_registry = providers.Singleton(RealtimeRegistry)

    folder_sync_engine = providers.Singleton(
        FolderSyncEngine,
        lifecycle=imap_lifecycle_manager,
        retry=imap_retry_executor,
        classifier=imap_error_classifier,
        normalizer=imap_message_normalizer,
        notifier=webhook_notifier,
        account_repo=repos.account,
        email_repo=repos.email,
        folder_cursor_repo=repos.folder_cursor,
        sync_log_repo=repos.sync_log,
        batch_size=settings.sync.batch_size,
        batch_delay=settings.sync.batch_delay,
        throttle_pause=settings.sync.throttle_pause,
        open_folder_policy=settings.sync.open_folder_retry,
        enumerate_policy=settings.sync.enumerate_retry,
    )
    account_orchestrator = providers.Singleton(
        AccountOrchestrator,
        account_repo=repos.account,
        folder_cursor_repo=repos.folder_cursor,
        folder_sync=folder_sync_engine,
        pool=imap_connection_pool,
        realtime=realtime_registry,
        default_folder=settings.sync.default_folder,
    )
