import asyncio

import pytest
from aioimaplib import aioimaplib

from mailsync.controllers.imap.errors import ErrorClassifier, ErrorKind
from mailsync.exceptions import (
    AuthenticationError,
    NotFoundError,
    ThrottledError,
    TransientConnectionError,
    TransportError,
)
from settings.settings import IMAPErrorPatternSettings


@pytest.mark.parametrize(
    "error, expected",
    [
        (TransportError("Unknown Mailbox: Archive"), ErrorKind.not_found),
        (TransportError("Mailbox does not exist"), ErrorKind.not_found),
        (TransportError("AUTHENTICATIONFAILED Invalid credentials"), ErrorKind.authentication),
        (TransportError("Too many requests, slow down"), ErrorKind.throttled),
        (TransportError("Temporary failure, please try again"), ErrorKind.throttled),
        (TransportError("Connection ended unexpectedly"), ErrorKind.transient_connection),
        (TransportError("Some unexpected server answer"), ErrorKind.unclassified),
        (RuntimeError("Rate limit reached"), ErrorKind.throttled),
        (RuntimeError("bogus"), ErrorKind.unclassified),
    ],
)
def test_classifies_by_message_text(classifier, error, expected):
    assert classifier.classify(error) is expected


def test_response_code_takes_part_in_matching(classifier):
    assert classifier.classify(TransportError("Please slow down", code="THROTTLED")) is ErrorKind.throttled
    assert classifier.classify(TransportError("Go away", code="AUTH")) is ErrorKind.authentication


@pytest.mark.parametrize(
    "error, expected",
    [
        (ThrottledError("x"), ErrorKind.throttled),
        (AuthenticationError("x"), ErrorKind.authentication),
        (NotFoundError("x"), ErrorKind.not_found),
        (TransientConnectionError("x"), ErrorKind.transient_connection),
        (ConnectionResetError(), ErrorKind.transient_connection),
        (BrokenPipeError(), ErrorKind.transient_connection),
        (asyncio.IncompleteReadError(b"", 10), ErrorKind.transient_connection),
        (aioimaplib.Abort("socket closed"), ErrorKind.transient_connection),
    ],
)
def test_typed_errors_win_over_text(classifier, error, expected):
    assert classifier.classify(error) is expected


def test_not_found_checked_before_throttle(classifier):
    # A message carrying both signatures is a missing folder, never a retry candidate.
    error = TransportError("Unknown Mailbox, try again later")
    assert classifier.classify(error) is ErrorKind.not_found


def test_patterns_are_configurable():
    patterns = IMAPErrorPatternSettings(IMAP_THROTTLE_PATTERNS=["bandwidth exceeded"])
    classifier = ErrorClassifier(patterns)

    assert classifier.classify(TransportError("Bandwidth Exceeded")) is ErrorKind.throttled
    assert classifier.classify(TransportError("rate limit")) is ErrorKind.unclassified
