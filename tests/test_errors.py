# ===============================================
# tests/test_errors.py
# ErrorClassifier: detection order, sub-cases,
# retry-delay extraction, and rolling history.
# ===============================================

from types import SimpleNamespace

import pytest
import requests

from replygen.errors import (
    ContentEmptyError, ErrorClassifier, ErrorKind, MalformedOutputError, Severity, format_delay,
)

from conftest import ProviderError, hard_quota_error, overload_error


@pytest.fixture
def classifier():
    return ErrorClassifier(clock=lambda: 1000.0)


@pytest.mark.parametrize("failure", [
    hard_quota_error(),
    {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "Resource has been exhausted"}},
    Exception("429: You exceeded your current quota, please check your plan."),
    ProviderError("quota", body={"error": {"status": "RESOURCE_EXHAUSTED"}}),
])
def test_hard_quota_is_critical_and_final(classifier, failure):
    err = classifier.classify(failure)
    assert err.kind == ErrorKind.QUOTA_EXHAUSTED
    assert err.severity == Severity.CRITICAL
    assert err.can_retry is False
    assert err.reason == "hard_quota"
    assert err.escalates is True
    assert any("OPENAI_API_KEY" in s for s in err.suggestions)


def test_search_quota_is_usable_but_final(classifier):
    err = classifier.classify(ProviderError("Quota exceeded for search_grounding requests", status_code=429))
    assert err.kind == ErrorKind.RATE_LIMIT
    assert err.severity == Severity.MEDIUM
    assert err.can_retry is False
    assert err.reason == "search_quota"
    assert err.escalates is False


def test_soft_rate_limit_uses_retry_info(classifier):
    failure = {"error": {
        "code": 429,
        "message": "Too many requests",
        "details": [{"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "30s"}],
    }}
    err = classifier.classify(failure)
    assert err.kind == ErrorKind.RATE_LIMIT
    assert err.severity == Severity.HIGH
    assert err.can_retry is True
    assert err.retry_delay_ms == 30000
    assert "30 seconds" in err.user_message


def test_rate_limit_delay_from_retry_after_header(classifier):
    response = SimpleNamespace(status_code=429, headers={"Retry-After": "7"})
    err = classifier.classify(ProviderError("Rate limit reached", response=response))
    assert err.retry_delay_ms == 7000


def test_rate_limit_delay_from_message(classifier):
    err = classifier.classify(Exception("Rate limit reached, please retry in 12.5s"))
    assert err.retry_delay_ms == 12500


def test_rate_limit_delay_defaults_to_a_minute(classifier):
    err = classifier.classify(Exception("rate limit reached"))
    assert err.retry_delay_ms == 60000
    assert "1 minute" in err.user_message


def test_rate_limit_wins_over_overload(classifier):
    err = classifier.classify(Exception("service unavailable: quota check failed"))
    assert err.kind == ErrorKind.RATE_LIMIT


def test_overload(classifier):
    err = classifier.classify(overload_error())
    assert err.kind == ErrorKind.OVERLOAD
    assert err.severity == Severity.MEDIUM
    assert err.can_retry is True
    assert err.retry_delay_ms == 5000


@pytest.mark.parametrize("failure,expired", [
    (ProviderError("Unauthorized", status_code=401), False),
    (ProviderError("Forbidden", status_code=403), False),
    (Exception("API key expired. Please renew the API key."), True),
])
def test_auth(classifier, failure, expired):
    err = classifier.classify(failure)
    assert err.kind == ErrorKind.AUTH
    assert err.severity == Severity.CRITICAL
    assert err.can_retry is False
    assert (err.reason == "expired_key") is expired
    assert ("expired" in err.user_message) is expired


@pytest.mark.parametrize("failure", [
    requests.exceptions.ConnectionError("connection refused"),
    requests.exceptions.Timeout("read timed out"),
    ConnectionResetError("reset by peer"),
    type("APIConnectionError", (Exception,), {})("Connection error."),
    Exception("Failed to fetch"),
])
def test_network(classifier, failure):
    err = classifier.classify(failure)
    assert err.kind == ErrorKind.NETWORK
    assert err.severity == Severity.HIGH
    assert err.can_retry is True
    assert err.retry_delay_ms == 3000


def test_content_empty(classifier):
    err = classifier.classify(ContentEmptyError("The model returned an empty response during the draft stage."))
    assert err.kind == ErrorKind.CONTENT_EMPTY
    assert err.can_retry is True
    assert err.retry_delay_ms == 0
    assert any("Rephrase" in s for s in err.suggestions)


def test_malformed(classifier):
    err = classifier.classify(MalformedOutputError("Model output is not valid JSON (malformed response)."))
    assert err.kind == ErrorKind.MALFORMED
    assert err.severity == Severity.MEDIUM
    assert err.can_retry is True
    assert err.retry_delay_ms == 2000
    assert "malformed" in err.user_message


def test_generic_and_safety(classifier):
    err = classifier.classify(ValueError("something odd"))
    assert err.kind == ErrorKind.GENERIC
    assert err.can_retry is True
    assert err.retry_delay_ms == 2000

    safety = classifier.classify(Exception("Response blocked: SAFETY"))
    assert safety.reason == "safety"
    assert "safety" in safety.user_message


def test_frequent_errors_get_richer_suggestions_only():
    now = [1000.0]
    classifier = ErrorClassifier(clock=lambda: now[0])
    first = classifier.classify(ValueError("odd"))
    classifier.classify(ValueError("odd"))
    third = classifier.classify(ValueError("odd"))

    assert first.reason is None
    assert third.reason == "frequent"
    assert third.suggestions[0].startswith("This error has occurred")
    assert third.can_retry == first.can_retry

    now[0] += 301
    later = classifier.classify(ValueError("odd"))
    assert later.reason is None


def test_history_is_bounded_per_kind(classifier):
    for _ in range(60):
        classifier.classify(ValueError("odd"))
    classifier.classify(overload_error())
    assert classifier.statistics() == {"generic": 50, "overload": 1}

    classifier.clear_history()
    assert classifier.statistics() == {}


def test_invalid_input():
    err = ErrorClassifier().invalid_input("Post content cannot be empty.")
    assert err.severity == Severity.LOW
    assert err.can_retry is False
    assert err.reason == "invalid_input"


@pytest.mark.parametrize("ms,text", [
    (0, "now"),
    (1000, "1 second"),
    (30000, "30 seconds"),
    (120000, "2 minutes"),
    (3600000, "1 hour"),
    (7200000, "2 hours"),
])
def test_format_delay(ms, text):
    assert format_delay(ms) == text
