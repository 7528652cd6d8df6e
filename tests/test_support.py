import logging
import sys

import pytest

from mailsync.container import ApplicationContainer
from mailsync.controllers.sync.orchestrator import AccountOrchestrator
from mailsync.environment import EnvironmentName
from mailsync.models import SyncStatus
from mailsync.models.decorators.types import EnumStringType
from mailsync.utils.password import PasswordUtils
from migrate import build_command
from settings import settings
from settings.log import LoggingSettings
from tests.fakes import make_account


def test_test_settings_are_loaded():
    assert settings.environment is EnvironmentName.TESTING
    assert not settings.environment.is_deployed
    assert settings.sync.open_folder_retry.max_retries == 3
    assert settings.sync.enumerate_retry.base_delay == 3.0
    assert settings.database.url.startswith("postgresql+asyncpg://")


@pytest.mark.parametrize(
    "level, expected", [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("bogus", logging.INFO)]
)
def test_logging_level_names(level, expected):
    assert LoggingSettings(LOGGING_LEVEL=level).level == expected


def test_password_round_trip():
    encrypted = PasswordUtils.encrypt_password("hunter2")

    assert encrypted != "hunter2"
    assert PasswordUtils.decrypt_password(encrypted) == "hunter2"


def test_foreign_ciphertext_is_rejected():
    with pytest.raises(ValueError):
        PasswordUtils.decrypt_password("not-a-fernet-token")


def test_mailbox_settings_completeness():
    assert make_account().has_mailbox_settings
    assert make_account(imap_username=None).has_mailbox_settings
    assert not make_account(imap_host=None).has_mailbox_settings
    assert not make_account(credentials=None).has_mailbox_settings


def test_enum_stored_by_name():
    column_type = EnumStringType(SyncStatus)

    assert column_type.process_bind_param(SyncStatus.throttled, None) == "throttled"
    assert column_type.process_bind_param("error", None) == "error"
    assert column_type.process_bind_param("missing", None) is None
    assert column_type.process_result_value("syncing", None) is SyncStatus.syncing
    with pytest.raises(ValueError):
        column_type.process_result_value("missing", None)


def test_migration_revision_autogenerates():
    command = build_command(["revision", "-m", "add index"])

    assert command[:3] == [sys.executable, "-m", "alembic"]
    assert command[3] == "-c" and command[4].endswith("alembic.ini")
    assert command[5:] == ["revision", "--autogenerate", "-m", "add index"]
    assert build_command(["upgrade", "head"])[5:] == ["upgrade", "head"]


def test_container_wires_the_orchestrator():
    container = ApplicationContainer()

    orchestrator = container.controllers.account_orchestrator()

    assert isinstance(orchestrator, AccountOrchestrator)
    assert orchestrator._pool is container.controllers.imap_connection_pool()
    assert orchestrator._folder_sync._notifier is container.controllers.webhook_notifier()
