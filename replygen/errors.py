# ============================================================
# Error taxonomy and classification
# ------------------------------------------------------------
# Every provider failure goes through ErrorClassifier before it
# leaves the orchestration layer. Callers only ever see a
# GenerationError carrying an ErrorResponse.
# ============================================================

from __future__ import annotations

import logging
import math
import re
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

import requests
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MAX_HISTORY_PER_KIND = 50
FREQUENT_WINDOW_S = 300
FREQUENT_THRESHOLD = 3
DEFAULT_RETRY_DELAY_MS = 60000

_RETRY_IN = re.compile(r"(?:retry|try again) in (\d+(?:\.\d+)?)\s*s", re.IGNORECASE)
_NETWORK_CLASS_NAMES = {"APIConnectionError", "APITimeoutError", "NetworkError"}


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    QUOTA_EXHAUSTED = "quota_exhausted"
    OVERLOAD = "overload"
    AUTH = "auth"
    NETWORK = "network"
    CONTENT_EMPTY = "content_empty"
    MALFORMED = "malformed"
    GENERIC = "generic"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorResponse(BaseModel):
    """What the presentation layer needs to render a failure."""
    kind: ErrorKind
    message: str
    user_message: str
    suggestions: List[str] = Field(default_factory=list)
    severity: Severity
    can_retry: bool
    retry_delay_ms: Optional[int] = None
    reason: Optional[str] = None

    @property
    def escalates(self) -> bool:
        """Critical, non-retryable quota/auth failures can be re-issued at a higher tier."""
        return (
            not self.can_retry
            and self.severity == Severity.CRITICAL
            and self.kind in (ErrorKind.QUOTA_EXHAUSTED, ErrorKind.RATE_LIMIT, ErrorKind.AUTH)
        )


class GenerationError(Exception):
    """The only exception the orchestrator raises."""

    def __init__(self, response: ErrorResponse):
        super().__init__(response.user_message)
        self.response = response


class ContentEmptyError(Exception):
    """The model returned no text."""


class MalformedOutputError(Exception):
    """Structured output could not be parsed against the expected shape."""


# -------------------------
# Failure inspection
# -------------------------
class _Failure:
    """Defensive view over an opaque provider failure."""

    def __init__(self, error: Any):
        self.error = error
        body = _body_of(error)
        nested = body.get("error") if isinstance(body.get("error"), dict) else body

        self.message = _message_of(error, nested)
        self.lower = self.message.lower()

        code = _int_or_none(getattr(error, "status_code", None))
        if code is None:
            code = _int_or_none(getattr(getattr(error, "response", None), "status_code", None))
        if code is None:
            code = _int_or_none(nested.get("code"))
        if code is None:
            code = _int_or_none(getattr(error, "code", None))
        self.code = code

        status = nested.get("status")
        if status is None and isinstance(nested.get("code"), str):
            status = nested["code"]
        if status is None and isinstance(getattr(error, "code", None), str):
            status = error.code
        self.status = status.lower() if isinstance(status, str) else None

        details = nested.get("details")
        self.details = details if isinstance(details, list) else []
        self.headers = _headers_of(error)
        self.class_names = {cls.__name__ for cls in type(error).__mro__}


def _body_of(error: Any) -> Dict[str, Any]:
    if isinstance(error, dict):
        return error
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        return body
    response = getattr(error, "response", None)
    if response is not None and hasattr(response, "json"):
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def _message_of(error: Any, nested: Dict[str, Any]) -> str:
    if isinstance(error, dict):
        msg = error.get("message") or nested.get("message")
        return str(msg) if msg else ""
    msg = getattr(error, "message", None)
    if isinstance(msg, str) and msg:
        return msg
    return str(error) if error is not None else ""


def _headers_of(error: Any) -> Dict[str, str]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return {}
    return {str(k).lower(): str(v) for k, v in dict(headers).items()}


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def format_delay(ms: int) -> str:
    """Human wording for a retry delay."""
    if ms <= 0:
        return "now"
    seconds = math.ceil(ms / 1000)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''}"
    if minutes > 0:
        return f"{minutes} minute{'s' if minutes > 1 else ''}"
    return f"{seconds} second{'s' if seconds > 1 else ''}"


# -------------------------
# Classifier
# -------------------------
class ErrorClassifier:
    """Maps provider failures to ErrorResponse and keeps a rolling per-kind history."""

    def __init__(self, clock: Callable[[], float] = time.time, max_history: int = MAX_HISTORY_PER_KIND):
        self._clock = clock
        self._max_history = max_history
        self._history: Dict[ErrorKind, Deque[float]] = {}
        self._lock = threading.Lock()

    def classify(self, error: Any, operation: str = "generate") -> ErrorResponse:
        f = _Failure(error)
        kind = self._kind_of(f)
        self._record(kind)
        response = self._respond(kind, f)
        logger.warning(
            "%s failed: kind=%s severity=%s retry=%s (%s)",
            operation, response.kind.value, response.severity.value, response.can_retry, f.message[:200],
        )
        return response

    def invalid_input(self, message: str, suggestion: Optional[str] = None) -> ErrorResponse:
        return ErrorResponse(
            kind=ErrorKind.GENERIC,
            message=message,
            user_message=message,
            suggestions=[suggestion or "Paste the text of the post you want to reply to."],
            severity=Severity.LOW,
            can_retry=False,
            reason="invalid_input",
        )

    # --- detection, first match wins ---
    def _kind_of(self, f: _Failure) -> ErrorKind:
        if self._is_rate_limit(f):
            return ErrorKind.QUOTA_EXHAUSTED if self._is_hard_quota(f) else ErrorKind.RATE_LIMIT
        if f.code == 503 or "overloaded" in f.lower or "unavailable" in f.lower:
            return ErrorKind.OVERLOAD
        if f.code in (401, 403) or "api key" in f.lower or "api_key" in f.lower:
            return ErrorKind.AUTH
        if self._is_network(f):
            return ErrorKind.NETWORK
        if isinstance(f.error, ContentEmptyError) or "empty response" in f.lower:
            return ErrorKind.CONTENT_EMPTY
        if isinstance(f.error, MalformedOutputError) or "malformed" in f.lower:
            return ErrorKind.MALFORMED
        return ErrorKind.GENERIC

    @staticmethod
    def _is_rate_limit(f: _Failure) -> bool:
        return (
            f.code == 429
            or f.status in ("resource_exhausted", "insufficient_quota")
            or "quota" in f.lower
            or "rate limit" in f.lower
        )

    @staticmethod
    def _is_hard_quota(f: _Failure) -> bool:
        return (
            "exceeded your current quota" in f.lower
            or f.status in ("resource_exhausted", "insufficient_quota")
        )

    @staticmethod
    def _is_network(f: _Failure) -> bool:
        if isinstance(f.error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                                ConnectionError, TimeoutError)):
            return True
        if f.class_names & _NETWORK_CLASS_NAMES:
            return True
        return "network" in f.lower or "fetch" in f.lower

    # --- responses ---
    def _respond(self, kind: ErrorKind, f: _Failure) -> ErrorResponse:
        if kind == ErrorKind.QUOTA_EXHAUSTED:
            return ErrorResponse(
                kind=kind,
                message=f.message or "Hard quota limit exceeded",
                user_message=(
                    "The configured API key has run out of quota. The application needs "
                    "a new key before it can generate replies."
                ),
                suggestions=[
                    "Keys are never accepted through this interface; set a new one in the service environment.",
                    "Set OPENAI_API_KEY for the service, then restart it.",
                    "Check usage and billing in your provider's console.",
                ],
                severity=Severity.CRITICAL,
                can_retry=False,
                reason="hard_quota",
            )
        if kind == ErrorKind.RATE_LIMIT:
            if "search_grounding" in f.lower:
                return ErrorResponse(
                    kind=kind,
                    message=f.message or "Search quota exceeded",
                    user_message=(
                        "The search quota has been reached. The reply was written from internal "
                        "knowledge and may lack recent citations."
                    ),
                    suggestions=[
                        "Replies are still generated from the built-in knowledge base.",
                        "Search grounding becomes available again once the quota resets.",
                    ],
                    severity=Severity.MEDIUM,
                    can_retry=False,
                    reason="search_quota",
                )
            delay = self.extract_retry_delay(f)
            return ErrorResponse(
                kind=kind,
                message=f.message or "Rate limit exceeded",
                user_message=f"The request limit has been reached. Please wait {format_delay(delay)} before trying again.",
                suggestions=[
                    "Please try again in a few moments.",
                    "For higher limits, upgrade the plan attached to the API key.",
                ],
                severity=Severity.HIGH,
                can_retry=True,
                retry_delay_ms=delay,
            )
        if kind == ErrorKind.OVERLOAD:
            return ErrorResponse(
                kind=kind,
                message="Service temporarily overloaded",
                user_message="The model is experiencing high demand. Please try again in a moment.",
                suggestions=[
                    "The request is retried automatically a few times.",
                    "Off-peak hours usually respond faster.",
                ],
                severity=Severity.MEDIUM,
                can_retry=True,
                retry_delay_ms=5000,
            )
        if kind == ErrorKind.AUTH:
            expired = "expired" in f.lower
            return ErrorResponse(
                kind=kind,
                message="Authentication failed",
                user_message=(
                    "The API key has expired. Please update it to continue."
                    if expired else
                    "Authentication failed. Please check the API key configuration."
                ),
                suggestions=[
                    "Obtain a new API key from your provider.",
                    "Make sure OPENAI_API_KEY is set in the service environment.",
                ],
                severity=Severity.CRITICAL,
                can_retry=False,
                reason="expired_key" if expired else None,
            )
        if kind == ErrorKind.NETWORK:
            return ErrorResponse(
                kind=kind,
                message="Network connection error",
                user_message="Unable to reach the model service. Please check the network connection.",
                suggestions=[
                    "Verify the service host has outbound connectivity.",
                    "Check any proxy or VPN settings on the host.",
                ],
                severity=Severity.HIGH,
                can_retry=True,
                retry_delay_ms=3000,
            )
        if kind == ErrorKind.CONTENT_EMPTY:
            return ErrorResponse(
                kind=kind,
                message=f.message or "Model returned no content",
                user_message=(
                    "The model could not write a reply. This happens when the topic is outside "
                    "the knowledge base or the post is ambiguous."
                ),
                suggestions=[
                    "Rephrase the post or trim unrelated text.",
                    "Try a different post to see if the issue persists.",
                ],
                severity=Severity.MEDIUM,
                can_retry=True,
                retry_delay_ms=0,
            )
        return self._generic(kind, f)

    def _generic(self, kind: ErrorKind, f: _Failure) -> ErrorResponse:
        frequent = self.is_frequent(kind)
        reason = None
        if kind == ErrorKind.MALFORMED:
            user_message = "The model returned a malformed response. This is usually temporary, please try again."
        elif "safety" in f.lower:
            user_message = "The response could not be generated due to safety settings."
            reason = "safety"
        else:
            user_message = "An unexpected error occurred. Please try again."
        if frequent:
            suggestions = [
                "This error has occurred several times recently. Consider:",
                "1. Simplifying the post text.",
                "2. Trying again in a few minutes.",
                "3. Reporting the issue if it persists.",
            ]
            reason = reason or "frequent"
        else:
            suggestions = ["Try again.", "If the problem continues, try a different post."]
        return ErrorResponse(
            kind=kind,
            message=f.message or "An unexpected error occurred",
            user_message=user_message,
            suggestions=suggestions,
            severity=Severity.MEDIUM,
            can_retry=True,
            retry_delay_ms=2000,
            reason=reason,
        )

    # --- retry delay ---
    @staticmethod
    def extract_retry_delay(f: "_Failure | Any") -> int:
        if not isinstance(f, _Failure):
            f = _Failure(f)
        for detail in f.details:
            if isinstance(detail, dict) and "RetryInfo" in str(detail.get("@type", "")):
                raw = str(detail.get("retryDelay", "")).strip().rstrip("s")
                try:
                    return int(float(raw) * 1000)
                except ValueError:
                    break
        retry_after = f.headers.get("retry-after")
        if retry_after:
            try:
                return int(float(retry_after) * 1000)
            except ValueError:
                pass
        match = _RETRY_IN.search(f.message)
        if match:
            return int(float(match.group(1)) * 1000)
        return DEFAULT_RETRY_DELAY_MS

    # --- history ---
    def _record(self, kind: ErrorKind) -> None:
        with self._lock:
            history = self._history.setdefault(kind, deque(maxlen=self._max_history))
            history.append(self._clock())

    def is_frequent(self, kind: ErrorKind) -> bool:
        cutoff = self._clock() - FREQUENT_WINDOW_S
        with self._lock:
            history = list(self._history.get(kind, ()))
        return sum(1 for ts in history if ts > cutoff) >= FREQUENT_THRESHOLD

    def statistics(self) -> Dict[str, int]:
        with self._lock:
            return {kind.value: len(h) for kind, h in self._history.items()}

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
