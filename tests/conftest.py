import os

os.environ["MAILSYNC_ENV"] = "test"

import pytest  # noqa: E402

from mailsync.controllers.imap.errors import ErrorClassifier  # noqa: E402
from settings.settings import IMAPErrorPatternSettings  # noqa: E402
from tests.fakes import SleepRecorder, make_account  # noqa: E402


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier(IMAPErrorPatternSettings())


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def account():
    return make_account()
