"""Unit tests for the locator healing pipeline."""

import pytest
from unittest.mock import patch

from locator_healer.core.models import (
    HealingBudget,
    HealingConfiguration,
    HealingStatus,
    LocatorKind,
    LocatorSpec,
    Platform,
)
from locator_healer.services.element_extractor import extract_all
from locator_healer.services.healing_pipeline import (
    ALTERNATIVE_ATTRIBUTES,
    CONTEXT,
    FEATURE,
    PARTIAL_MATCH,
    SAME_STRATEGY,
    HealingPipeline,
    build_fallbacks,
    build_xpath,
    context_keywords,
    find_by_context,
    find_by_partial_match,
    heal_by_feature_score,
)
from locator_healer.services.similarity_scorer import SimilarityScorer
from locator_healer.services.snapshot_parser import parse_snapshot


VERSIONED_BUTTON_SOURCE = """<hierarchy>
  <android.widget.Button class="android.widget.Button" resource-id="login_button_v2" text="Log in"/>
  <android.widget.TextView class="android.widget.TextView" resource-id="footer" text="Terms"/>
</hierarchy>
"""

LOGIN_FORM_SOURCE = """<hierarchy>
  <android.widget.LinearLayout class="android.widget.LinearLayout" resource-id="login_form">
    <android.widget.Button class="android.widget.Button" resource-id="cancel" text="Cancel"/>
    <android.widget.Button class="android.widget.Button" resource-id="login_btn" text="Log in"/>
  </android.widget.LinearLayout>
</hierarchy>
"""

UNRELATED_VALUE = "qwerty_zebra_pancake"


class TestSameStrategyMatch:
    """Test cases for exact and near-exact matches."""

    def setup_method(self):
        self.pipeline = HealingPipeline()

    def test_exact_identifier_match(self, android_page_source):
        spec = LocatorSpec.create("id", "com.app:id/email_input")

        outcome = self.pipeline.heal(spec, android_page_source)

        assert outcome.status == HealingStatus.MATCHED
        assert outcome.platform == Platform.ANDROID
        candidate = outcome.candidate
        assert candidate.strategy == LocatorKind.ID
        assert candidate.value == "com.app:id/email_input"
        assert candidate.score >= 0.85
        assert candidate.strategy_name == SAME_STRATEGY
        assert candidate.original == spec
        # High confidence after the first strategy skips the rest
        assert outcome.strategies_run == [SAME_STRATEGY]

    def test_fallbacks_for_android_match(self, android_page_source):
        outcome = self.pipeline.heal(LocatorSpec.create("id", "com.app:id/email_input"),
                                     android_page_source)
        fallbacks = outcome.candidate.fallbacks

        assert [f.kind for f in fallbacks] == [
            LocatorKind.ACCESSIBILITY, LocatorKind.UIAUTOMATOR, LocatorKind.XPATH
        ]
        assert fallbacks[1].value == 'new UiSelector().resourceId("com.app:id/email_input")'
        assert fallbacks[2].value == "//android.widget.EditText[@resource-id='com.app:id/email_input']"
        assert all(f.value != outcome.candidate.value for f in fallbacks)
        assert outcome.candidate.fallback_strings()[0] == 'AppiumBy.accessibilityId("Email input")'

    def test_near_match_ends_the_search(self, ios_page_source):
        outcome = self.pipeline.heal(LocatorSpec.create("accessibilityId", "submit_btn"),
                                     ios_page_source)

        assert outcome.platform == Platform.IOS
        candidate = outcome.candidate
        assert candidate.strategy == LocatorKind.ACCESSIBILITY
        assert candidate.value == "submit_button"
        assert 0.6 <= candidate.score < 0.85
        assert outcome.strategies_run == [SAME_STRATEGY]

    def test_context_does_not_replace_identifier_match(self):
        outcome = self.pipeline.heal(LocatorSpec.create("id", "login_button"), LOGIN_FORM_SOURCE)

        candidate = outcome.candidate
        assert candidate.strategy == LocatorKind.ID
        assert candidate.value == "login_btn"
        assert candidate.strategy_name == SAME_STRATEGY
        assert 0.6 <= candidate.score < 0.85
        assert outcome.strategies_run == [SAME_STRATEGY]

    def test_ios_fallbacks(self, ios_page_source):
        outcome = self.pipeline.heal(LocatorSpec.create("accessibilityId", "submit_btn"),
                                     ios_page_source)

        assert [(f.kind, f.value) for f in outcome.candidate.fallbacks] == [
            (LocatorKind.NAME, "Submit"),
            (LocatorKind.IOS_CLASS_CHAIN, "**/XCUIElementTypeButton[`name == 'submit_button'`]"),
            (LocatorKind.IOS_PREDICATE, "name == 'submit_button'"),
            (LocatorKind.XPATH, "//XCUIElementTypeButton[@name='submit_button']"),
        ]

    def test_unusable_elements_are_skipped(self, android_page_source):
        outcome = self.pipeline.heal(LocatorSpec.create("id", "com.app:id/hidden_button"),
                                     android_page_source)

        assert outcome.candidate is None or outcome.candidate.value != "com.app:id/hidden_button"


class TestPartialMatch:
    """Test cases for locators with dynamic fragments."""

    def test_versioned_identifier(self):
        snapshot = parse_snapshot(VERSIONED_BUTTON_SOURCE)
        elements = extract_all(snapshot)

        match = find_by_partial_match(elements, LocatorKind.ID, "login_button",
                                      HealingBudget(), SimilarityScorer())

        assert match is not None
        assert match.value == "login_button_v2"
        assert match.strategy_name == PARTIAL_MATCH
        assert match.score >= 0.6

    def test_versioned_identifier_through_pipeline(self):
        outcome = HealingPipeline().heal(LocatorSpec.create("id", "login_button"),
                                         VERSIONED_BUTTON_SOURCE)

        assert outcome.candidate.value == "login_button_v2"
        assert outcome.candidate.score >= 0.6

    def test_short_key_part_is_skipped(self):
        elements = extract_all(parse_snapshot(VERSIONED_BUTTON_SOURCE))
        budget = HealingBudget()

        assert find_by_partial_match(elements, LocatorKind.ID, "ab_123", budget) is None
        assert budget.nodes_processed == 0


class TestSemanticKey:
    """Test cases for healing an empty value from its property name."""

    def test_search_phrase_from_key(self, android_page_source):
        spec = LocatorSpec.create("accessibility", "", "login.input.email_address")

        outcome = HealingPipeline().heal(spec, android_page_source)

        assert outcome.search_value == "email address"
        assert outcome.candidate.value == "Email address"
        assert outcome.candidate.strategy == LocatorKind.NAME
        assert outcome.candidate.strategy_name == ALTERNATIVE_ATTRIBUTES

    def test_empty_value_without_key(self, android_page_source):
        outcome = HealingPipeline().heal(LocatorSpec.create("id", "  "), android_page_source)

        assert outcome.status == HealingStatus.INVALID_INPUT
        assert outcome.candidate is None


class TestStrategySelection:
    """Test cases for strategy ordering, early exit and skipping."""

    def test_no_match_within_budget(self, android_page_source):
        outcome = HealingPipeline().heal(LocatorSpec.create("id", UNRELATED_VALUE),
                                         android_page_source)

        assert outcome.status == HealingStatus.NO_MATCH
        assert outcome.candidate is None
        assert not outcome.budget_exhausted
        assert outcome.strategies_run == [SAME_STRATEGY, PARTIAL_MATCH,
                                          ALTERNATIVE_ATTRIBUTES, CONTEXT]

    def test_early_exit_for_all_strategies(self, android_page_source):
        config = HealingConfiguration(early_exit_all_strategies=True)
        spec = LocatorSpec.create("accessibility", "", "login.input.email_address")

        outcome = HealingPipeline(config).heal(spec, android_page_source)

        assert outcome.candidate.score == 1.0
        assert outcome.strategies_run == [SAME_STRATEGY, PARTIAL_MATCH, ALTERNATIVE_ATTRIBUTES]

    def test_all_strategies_search_for_high_confidence(self, ios_page_source):
        config = HealingConfiguration(early_exit_all_strategies=True)

        outcome = HealingPipeline(config).heal(
            LocatorSpec.create("accessibilityId", "submit_btn"), ios_page_source)

        assert outcome.candidate.value == "submit_button"
        assert outcome.candidate.strategy_name == SAME_STRATEGY
        assert outcome.strategies_run == [SAME_STRATEGY, PARTIAL_MATCH,
                                          ALTERNATIVE_ATTRIBUTES, CONTEXT]

    def test_context_skipped_when_time_is_short(self, android_page_source):
        config = HealingConfiguration(max_healing_seconds=4.0, context_margin_seconds=5.0)

        outcome = HealingPipeline(config).heal(LocatorSpec.create("id", UNRELATED_VALUE),
                                               android_page_source)

        assert CONTEXT not in outcome.strategies_run
        assert outcome.strategies_run == [SAME_STRATEGY, PARTIAL_MATCH, ALTERNATIVE_ATTRIBUTES]

    def test_feature_scorer_runs_when_enabled(self, android_page_source):
        config = HealingConfiguration(enable_feature_scorer=True)

        outcome = HealingPipeline(config).heal(LocatorSpec.create("id", UNRELATED_VALUE),
                                               android_page_source)

        assert outcome.strategies_run[-1] == FEATURE

    def test_disabled(self, android_page_source):
        outcome = HealingPipeline(HealingConfiguration(enabled=False)).heal(
            LocatorSpec.create("id", "com.app:id/email_input"), android_page_source)

        assert outcome.status == HealingStatus.DISABLED
        assert outcome.candidate is None


class TestBudget:
    """Test cases for time and node ceilings."""

    def test_timeout_during_extraction(self, android_page_source, clock_factory):
        clock = clock_factory(start=0.0, step=10.0)

        outcome = HealingPipeline(clock=clock).heal(
            LocatorSpec.create("id", "com.app:id/email_input"), android_page_source)

        assert outcome.status == HealingStatus.BUDGET_EXHAUSTED
        assert outcome.budget_exhausted
        assert outcome.candidate is None
        assert outcome.strategies_run == []

    def test_node_ceiling_during_extraction(self, android_page_source):
        config = HealingConfiguration(max_nodes=3)

        outcome = HealingPipeline(config).heal(LocatorSpec.create("id", UNRELATED_VALUE),
                                               android_page_source)

        assert outcome.status == HealingStatus.BUDGET_EXHAUSTED
        assert outcome.budget_exhausted
        assert outcome.nodes_processed == 3
        assert outcome.strategies_run == []

    def test_node_ceiling_is_shared_by_every_stage(self):
        config = HealingConfiguration(max_nodes=3)

        outcome = HealingPipeline(config).heal(LocatorSpec.create("id", UNRELATED_VALUE),
                                               VERSIONED_BUTTON_SOURCE)

        assert outcome.status == HealingStatus.BUDGET_EXHAUSTED
        assert outcome.nodes_processed <= 3
        assert outcome.strategies_run == [SAME_STRATEGY]

    def test_nodes_processed_stays_within_ceiling(self, android_page_source):
        config = HealingConfiguration(max_nodes=20, enable_feature_scorer=True)

        outcome = HealingPipeline(config).heal(LocatorSpec.create("id", UNRELATED_VALUE),
                                               android_page_source)

        assert outcome.nodes_processed <= 20


class TestInvalidInput:
    """Test cases for snapshots that cannot be searched."""

    def setup_method(self):
        self.pipeline = HealingPipeline()
        self.spec = LocatorSpec.create("id", "login")

    def test_malformed_snapshot(self):
        outcome = self.pipeline.heal(self.spec, "<hierarchy><node>")
        assert outcome.status == HealingStatus.INVALID_INPUT
        assert outcome.candidate is None

    def test_empty_snapshot(self):
        for source in (None, "", "  "):
            assert self.pipeline.heal(self.spec, source).status == HealingStatus.INVALID_INPUT

    def test_internal_error_degrades_to_no_match(self, android_page_source):
        with patch("locator_healer.services.healing_pipeline.extract_all",
                   side_effect=RuntimeError("boom")):
            outcome = self.pipeline.heal(self.spec, android_page_source)

        assert outcome.status == HealingStatus.NO_MATCH
        assert outcome.candidate is None


class TestContextAndFeatureStrategies:
    """Test cases for the context and feature-score strategies."""

    def test_context_keywords(self):
        assert context_keywords("Sign-in to my account!") == ["sign", "account"]
        assert context_keywords("a b") == []

    def test_context_uses_previous_sibling_text(self, android_page_source):
        snapshot = parse_snapshot(android_page_source)
        elements = [f for f in extract_all(snapshot) if f.usable]

        match = find_by_context(elements, "email address", snapshot, HealingBudget())

        assert match.kind == LocatorKind.XPATH
        assert match.score == 1.0
        assert match.strategy_name == CONTEXT

    def test_feature_score_exact_description(self, android_page_source):
        elements = extract_all(parse_snapshot(android_page_source))

        match = heal_by_feature_score("Login", elements, HealingBudget())

        assert match.score == pytest.approx(0.9)
        assert match.kind == LocatorKind.ID
        assert match.value == "com.app:id/login_button_v2"
        assert match.strategy_name == FEATURE


class TestPathAndFallbackBuilders:
    """Test cases for structural paths and alternative locators."""

    def test_root_gets_absolute_path(self, android_page_source):
        elements = extract_all(parse_snapshot(android_page_source))
        assert build_xpath(elements[0]) == "/hierarchy"

    def test_quotes_in_values(self):
        source = '<hierarchy><android.widget.TextView text="Don\'t stop"/></hierarchy>'
        elements = extract_all(parse_snapshot(source))
        assert build_xpath(elements[1]) == '//android.widget.TextView[@text="Don\'t stop"]'

    def test_both_quote_kinds_use_concat(self):
        source = '<hierarchy><android.widget.TextView text="It\'s &quot;ok&quot;"/></hierarchy>'
        elements = extract_all(parse_snapshot(source))

        assert build_xpath(elements[1]) == (
            """//android.widget.TextView[@text=concat('It', "'", 's "ok"')]""")

    def test_android_uiautomator_description_fallback(self):
        source = ('<hierarchy><android.view.View class="android.view.View" '
                  'content-desc="Menu"/></hierarchy>')
        elements = extract_all(parse_snapshot(source))

        fallbacks = build_fallbacks(elements[1])

        assert [(f.kind, f.value) for f in fallbacks] == [
            (LocatorKind.ACCESSIBILITY, "Menu"),
            (LocatorKind.UIAUTOMATOR, 'new UiSelector().description("Menu")'),
            (LocatorKind.XPATH, "//android.view.View[@content-desc='Menu']"),
        ]
