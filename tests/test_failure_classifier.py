from __future__ import annotations

import allure

from tane.garden.failure_classifier import (
    GROW_FAILURE_CLASSIFIER_VERSION,
    classify_grow_failure,
)
from tane.garden.models import FailureClass
from tane.provider.base import ConfigurationError, EmptyOutputError, ProviderError

pytestmark = [
    allure.epic("Garden"),
    allure.feature("Failure Classification"),
]


def test_classifier_version_is_stable() -> None:
    assert GROW_FAILURE_CLASSIFIER_VERSION == 1


def test_typed_errors_take_precedence_over_text() -> None:
    configuration = classify_grow_failure(ConfigurationError("quota exceeded, no models"))
    empty = classify_grow_failure(EmptyOutputError("Agent did not return a final report."))

    assert configuration.failure_class == FailureClass.CONFIGURATION
    assert configuration.matched_rule == "configuration_error"
    assert empty.failure_class == FailureClass.OUTPUT_EMPTY


def test_classifier_prefers_billing_over_transient_flag() -> None:
    classified = classify_grow_failure(
        ProviderError("google returned HTTP 429: Quota exceeded for project", transient=True),
    )

    assert classified.failure_class == FailureClass.BILLING_OR_QUOTA
    assert classified.matched_rule == "billing_or_quota"
    assert classified.matched_pattern == "quota"


def test_classifier_maps_auth_and_model_errors() -> None:
    auth = classify_grow_failure(ProviderError("openai returned HTTP 401: Incorrect API key"))
    model = classify_grow_failure(ProviderError("zai returned HTTP 400: Unknown model glm-9"))

    assert auth.failure_class == FailureClass.ACCESS_OR_AUTH
    assert model.failure_class == FailureClass.MODEL_NOT_AVAILABLE
    assert model.matched_pattern == "unknown model"


def test_classifier_reads_the_error_chain() -> None:
    try:
        try:
            raise OSError("Connection reset by peer")
        except OSError as cause:
            raise ProviderError("request failed") from cause
    except ProviderError as error:
        classified = classify_grow_failure(error)

    assert classified.failure_class == FailureClass.PROVIDER_TRANSIENT
    assert classified.matched_pattern == "connection reset"


def test_transient_flag_without_pattern_is_transient() -> None:
    classified = classify_grow_failure(ProviderError("HTTP 503: upstream", transient=True))

    assert classified.failure_class == FailureClass.PROVIDER_TRANSIENT
    assert classified.matched_rule == "transient_flag"


def test_unmatched_errors_fall_back_to_provider_error() -> None:
    classified = classify_grow_failure(KeyError("choices"))

    assert classified.failure_class == FailureClass.PROVIDER_ERROR
    assert classified.to_log_details() == {
        "classifier_version": 1,
        "failure_class": "provider_error",
        "matched_rule": "fallback_provider_error",
        "matched_pattern": None,
    }
