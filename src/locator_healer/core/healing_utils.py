"""Utility functions for classifying driver failures before healing."""

from typing import List, NamedTuple, Tuple

from .models.healing_models import FailureClassification, FailureType, Severity


class _FailureRule(NamedTuple):
    failure_type: FailureType
    type_names: Tuple[str, ...]
    message_patterns: Tuple[str, ...]
    severity: Severity
    recoverable: bool


# Checked in order; the first rule whose exception name matches wins, then
# the first whose message pattern matches.
_FAILURE_RULES: List[_FailureRule] = [
    _FailureRule(FailureType.NO_SUCH_ELEMENT,
                 ("nosuchelementexception",),
                 ("no such element", "unable to locate element",
                  "unable to find element", "element not found"),
                 Severity.HIGH, True),
    _FailureRule(FailureType.CLICK_INTERCEPTED,
                 ("elementclickinterceptedexception",),
                 ("click intercepted",),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.ELEMENT_NOT_INTERACTABLE,
                 ("elementnotinteractableexception",),
                 ("element not interactable",),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.ELEMENT_NOT_CLICKABLE,
                 (),
                 ("element is not clickable", "element not clickable"),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.ELEMENT_NOT_VISIBLE,
                 ("elementnotvisibleexception",),
                 ("element is not visible", "element not displayed"),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.STALE_ELEMENT,
                 ("staleelementreferenceexception",),
                 ("stale element", "element is no longer attached"),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.TIMEOUT,
                 ("timeoutexception",),
                 ("timed out", "timeout"),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.INVALID_ELEMENT_STATE,
                 ("invalidelementstateexception",),
                 ("invalid element state",),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.NO_SUCH_SESSION,
                 ("nosuchsessionexception",),
                 ("session not found", "no such session"),
                 Severity.CRITICAL, False),
    _FailureRule(FailureType.SESSION_NOT_CREATED,
                 ("sessionnotcreatedexception",),
                 ("session not created",),
                 Severity.CRITICAL, False),
    _FailureRule(FailureType.UNREACHABLE_BROWSER,
                 ("unreachablebrowserexception",),
                 ("unreachable",),
                 Severity.CRITICAL, False),
    _FailureRule(FailureType.INVALID_SELECTOR,
                 ("invalidselectorexception",),
                 ("invalid selector",),
                 Severity.HIGH, False),
    _FailureRule(FailureType.NO_ALERT_PRESENT,
                 ("noalertpresentexception",),
                 ("no alert",),
                 Severity.LOW, True),
    _FailureRule(FailureType.NO_SUCH_WINDOW,
                 ("nosuchwindowexception",),
                 ("no such window",),
                 Severity.HIGH, False),
    _FailureRule(FailureType.NO_SUCH_FRAME,
                 ("nosuchframeexception",),
                 ("no such frame",),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.UNHANDLED_ALERT,
                 ("unhandledalertexception",),
                 ("unexpected alert",),
                 Severity.MEDIUM, True),
    _FailureRule(FailureType.JAVASCRIPT_EXCEPTION,
                 ("javascriptexception",),
                 ("javascript error",),
                 Severity.MEDIUM, False),
]

# Failures where the locator itself is the likely culprit
_HEALABLE_TYPES = {
    FailureType.NO_SUCH_ELEMENT,
    FailureType.TIMEOUT,
    FailureType.STALE_ELEMENT,
    FailureType.ELEMENT_NOT_INTERACTABLE,
    FailureType.ELEMENT_NOT_CLICKABLE,
    FailureType.ELEMENT_NOT_VISIBLE,
    FailureType.CLICK_INTERCEPTED,
    FailureType.INVALID_ELEMENT_STATE,
}


def classify_failure(exception_type: str, exception_message: str = "") -> FailureClassification:
    """Classify a driver failure based on exception details.

    Args:
        exception_type: Exception class name, qualified or not
        exception_message: Exception message

    Returns:
        FailureClassification: Failure type, severity and recoverability
    """
    exception_type_lower = (exception_type or "").lower()
    message_lower = (exception_message or "").lower()

    for rule in _FAILURE_RULES:
        if any(name in exception_type_lower for name in rule.type_names):
            return _classification(rule)

    for rule in _FAILURE_RULES:
        if any(pattern in message_lower for pattern in rule.message_patterns):
            return _classification(rule)

    if "webdriverexception" in exception_type_lower:
        return FailureClassification(FailureType.WEBDRIVER_EXCEPTION, Severity.HIGH, False)

    return FailureClassification(FailureType.GENERIC, Severity.MEDIUM, False)


def classify_exception(exception: BaseException) -> FailureClassification:
    """Classify a raised exception object."""
    return classify_failure(type(exception).__name__, str(exception))


def is_healable(classification: FailureClassification) -> bool:
    """Determine if a classified failure is worth a healing attempt.

    Args:
        classification: Result of classify_failure

    Returns:
        bool: True if the failure can potentially be healed
    """
    return classification.recoverable and classification.failure_type in _HEALABLE_TYPES


def _classification(rule: _FailureRule) -> FailureClassification:
    return FailureClassification(rule.failure_type, rule.severity, rule.recoverable)
