"""Unit tests for driver failure classification."""

import pytest

from locator_healer.core.healing_utils import classify_exception, classify_failure, is_healable
from locator_healer.core.models import FailureType, Severity


class NoSuchElementException(Exception):
    pass


class TestClassifyFailure:
    """Test cases for classify_failure."""

    @pytest.mark.parametrize("exception_type,expected", [
        ("NoSuchElementException", FailureType.NO_SUCH_ELEMENT),
        ("selenium.common.exceptions.StaleElementReferenceException", FailureType.STALE_ELEMENT),
        ("ElementClickInterceptedException", FailureType.CLICK_INTERCEPTED),
        ("TimeoutException", FailureType.TIMEOUT),
        ("InvalidSelectorException", FailureType.INVALID_SELECTOR),
        ("NoSuchSessionException", FailureType.NO_SUCH_SESSION),
    ])
    def test_by_exception_name(self, exception_type, expected):
        assert classify_failure(exception_type).failure_type == expected

    def test_by_message(self):
        classification = classify_failure("RuntimeError", "Element is not clickable at point (10, 20)")

        assert classification.failure_type == FailureType.ELEMENT_NOT_CLICKABLE
        assert classification.description == "Element Not Clickable"

    def test_name_wins_over_message(self):
        classification = classify_failure("TimeoutException", "no such element")
        assert classification.failure_type == FailureType.TIMEOUT

    def test_webdriver_and_generic(self):
        assert classify_failure("WebDriverException", "boom").failure_type == \
            FailureType.WEBDRIVER_EXCEPTION
        generic = classify_failure("KeyError", "")
        assert generic.failure_type == FailureType.GENERIC
        assert generic.severity == Severity.MEDIUM
        assert not generic.recoverable

    def test_empty_input(self):
        assert classify_failure(None, None).failure_type == FailureType.GENERIC

    def test_classify_exception_object(self):
        classification = classify_exception(NoSuchElementException("gone"))

        assert classification.failure_type == FailureType.NO_SUCH_ELEMENT
        assert classification.severity == Severity.HIGH


class TestIsHealable:
    """Test cases for is_healable."""

    def test_locator_failures_are_healable(self):
        assert is_healable(classify_failure("NoSuchElementException"))
        assert is_healable(classify_failure("StaleElementReferenceException"))

    def test_session_and_selector_failures_are_not(self):
        assert not is_healable(classify_failure("NoSuchSessionException"))
        assert not is_healable(classify_failure("InvalidSelectorException"))
        assert not is_healable(classify_failure("NoAlertPresentException"))
