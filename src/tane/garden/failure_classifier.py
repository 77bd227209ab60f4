"""Deterministic classification of failed gardener attempts."""

from __future__ import annotations

from dataclasses import dataclass

from tane.garden.models import FailureClass
from tane.provider.base import ConfigurationError, EmptyOutputError, ProviderError

GROW_FAILURE_CLASSIFIER_VERSION = 1

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "usage limit",
    "exceeded",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "incorrect api key",
    "authentication",
    "http 401",
    "http 403",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
    "does not exist",
    "not available in your region",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "http 429",
    "timed out",
    "temporarily unavailable",
    "connection reset",
    "network error",
    "try again later",
)


@dataclass(slots=True)
class GrowFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None

    def to_log_details(self) -> dict[str, object]:
        return {
            "classifier_version": GROW_FAILURE_CLASSIFIER_VERSION,
            "failure_class": self.failure_class.value,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_grow_failure(error: BaseException) -> GrowFailureClassification:
    """Classify an exception raised inside one gardener attempt."""

    if isinstance(error, ConfigurationError):
        return GrowFailureClassification(FailureClass.CONFIGURATION, "configuration_error", None)
    if isinstance(error, EmptyOutputError):
        return GrowFailureClassification(FailureClass.OUTPUT_EMPTY, "empty_output", None)

    haystack = _error_chain_text(error)
    for failure_class, rule, patterns in (
        (FailureClass.BILLING_OR_QUOTA, "billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
        (FailureClass.ACCESS_OR_AUTH, "access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
        (FailureClass.MODEL_NOT_AVAILABLE, "model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
        (FailureClass.PROVIDER_TRANSIENT, "transient", _TRANSIENT_PATTERNS),
    ):
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return GrowFailureClassification(failure_class, rule, pattern)

    if isinstance(error, ProviderError) and error.transient:
        return GrowFailureClassification(FailureClass.PROVIDER_TRANSIENT, "transient_flag", None)
    return GrowFailureClassification(FailureClass.PROVIDER_ERROR, "fallback_provider_error", None)


def _error_chain_text(error: BaseException) -> str:
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(str(current))
        current = current.__cause__ or current.__context__
    return "\n".join(parts).lower()


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
