"""
Similarity Scoring for Locator Healing

String normalisation and the distance/overlap metrics the healing
strategies rank candidates with:

- Edit-distance (Levenshtein) similarity on normalised strings
- Token-set ratio (Jaccard overlap of normalised tokens)
- Partial-match score for locators carrying dynamic fragments
- Weighted feature score for ranking whole elements

All scores are deterministic and lie in [0, 1].
"""

import re
import logging
from typing import Dict, List, Tuple

from .element_extractor import ElementFeatures


logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_KEY_SEPARATORS = re.compile(r"[._\-\s]+")

# Generic page-object words that say nothing about the element itself
SEARCH_TERM_STOPLIST = frozenset({
    "page", "element", "btn", "button", "input", "field", "lbl", "label",
    "txt", "text", "img", "image", "link", "lnk", "div", "span", "section",
})


def normalize(value: str) -> str:
    """Lowercase, collapse every non-alphanumeric run to one space, trim."""
    if not value:
        return ""
    return _NON_ALNUM.sub(" ", value.lower()).strip()


def token_set_ratio(a: str, b: str) -> float:
    """Jaccard overlap of the normalised token sets of two strings."""
    na = normalize(a)
    nb = normalize(b)
    if not na and not nb:
        return 1.0
    if not na or not nb:
        return 0.0

    tokens_a = set(na.split(" "))
    tokens_b = set(nb.split(" "))
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def extract_key_part(value: str) -> str:
    """Strip volatile fragments from a locator value.

    Digit runs and hash-like suffixes (a separator followed by 8+ hex
    characters) are removed, then leading/trailing separators are trimmed.
    """
    if not value:
        return ""
    key = re.sub(r"\d+", "", value)
    key = re.sub(r"[_-][a-f0-9]{8,}", "", key)
    key = re.sub(r"\s+", " ", key)
    key = re.sub(r"[._-]+$", "", key)
    key = re.sub(r"^[._-]+", "", key)
    return key.strip()


def contains_either(a: str, b: str) -> bool:
    """Case-insensitive check that one string contains the other."""
    if not a or not b:
        return False
    a_lower = a.lower()
    b_lower = b.lower()
    return a_lower in b_lower or b_lower in a_lower


def _split_words(value: str) -> List[str]:
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", value)
    return [word for word in _KEY_SEPARATORS.split(spaced.lower()) if word]


def _token_words(token: str) -> List[str]:
    """Words of one separator-delimited token, minus a leading role prefix."""
    words = _split_words(token)
    if len(words) > 1 and words[0] in SEARCH_TERM_STOPLIST:
        words = words[1:]
    return [word for word in words if len(word) > 2]


def extract_search_terms(semantic_key: str) -> str:
    """Turn a page-object property name into a search phrase.

    The last dotted segment names the element. Tokens of it that are
    generic role words are dropped, and so is a role word prefixed to a
    camelCase token ("btnSubmit"); a role word suffixed to one
    ("emailInput") describes the element and is kept. Words of two
    characters or fewer are dropped. If nothing survives, the last two
    words of the whole key are used instead.

    Examples:
        "login.input.email_address" -> "email address"
        "btn_submit_form" -> "submit form"
        "user.profile.name.field" -> "name field"
        "LoginPage.emailInput" -> "email input"

    Args:
        semantic_key: Property path or name of the locator

    Returns:
        Space-separated search phrase, empty only for a blank key
    """
    if not semantic_key or not semantic_key.strip():
        return ""

    key = semantic_key.strip()
    segments = [segment for segment in key.split(".") if segment]
    last_segment = segments[-1] if segments else key

    meaningful: List[str] = []
    for token in _KEY_SEPARATORS.split(last_segment):
        if token and token.lower() not in SEARCH_TERM_STOPLIST:
            meaningful.extend(_token_words(token))
    if not meaningful:
        meaningful = _split_words(key)[-2:]

    return " ".join(meaningful) or last_segment


class SimilarityScorer:
    """
    Scores locator values and elements against a target value.

    Levenshtein distances are memoised per scorer instance, since the same
    attribute values recur across strategies within one healing attempt.
    """

    MAX_CACHE_ENTRIES = 10000

    CONTAINMENT_BOOST = 0.15
    KEY_PART_BOOST = 0.2
    PARTIAL_CONTAINMENT_BOOST = 0.1

    EXACT_FEATURE_SCORE = 0.9
    TEXT_FEATURE_WEIGHT = 0.3
    CLASS_FEATURE_BONUS = 0.05
    USABLE_FEATURE_BONUS = 0.05

    def __init__(self):
        self._levenshtein_cache: Dict[Tuple[str, str], int] = {}

    def edit_similarity(self, a: str, b: str) -> float:
        """
        Levenshtein distance on normalised strings, mapped to [0, 1].

        Equal strings (including two empty ones) score 1.0, and the result
        is symmetric in its arguments.
        """
        na = normalize(a)
        nb = normalize(b)
        if na == nb:
            return 1.0
        if not na or not nb:
            return 0.0

        # Order the pair so (a, b) and (b, a) share a cache slot
        cache_key = (na, nb) if na <= nb else (nb, na)
        distance = self._levenshtein_cache.get(cache_key)
        if distance is None:
            distance = self._levenshtein_distance(*cache_key)
            if len(self._levenshtein_cache) >= self.MAX_CACHE_ENTRIES:
                self._levenshtein_cache.clear()
            self._levenshtein_cache[cache_key] = distance

        return 1.0 - (distance / max(len(na), len(nb)))

    def boosted_similarity(self, target: str, candidate: str) -> float:
        """Edit similarity plus a bonus when one value contains the other."""
        score = self.edit_similarity(target, candidate)
        if contains_either(target, candidate):
            score = min(1.0, score + self.CONTAINMENT_BOOST)
        return score

    def partial_match_score(self, original: str, candidate: str) -> float:
        """Score two values that share a stable key part.

        Args:
            original: The original locator value
            candidate: Attribute value of the candidate element

        Returns:
            Edit similarity, boosted when the key parts are equal and again
            when one value contains the other, capped at 1.0
        """
        score = self.edit_similarity(original, candidate)

        if extract_key_part(original).lower() == extract_key_part(candidate).lower():
            score = min(1.0, score + self.KEY_PART_BOOST)

        if contains_either(original, candidate):
            score = min(1.0, score + self.PARTIAL_CONTAINMENT_BOOST)

        return score

    def feature_score(self, features: ElementFeatures, target: str) -> float:
        """Weighted score of a whole element against a target string."""
        if target:
            target_lower = target.lower()
            for attribute in (features.identifier, features.description, features.name):
                if attribute and attribute.lower() == target_lower:
                    return self.EXACT_FEATURE_SCORE

        text_similarity = max(
            token_set_ratio(features.text, target),
            token_set_ratio(features.description, target),
            token_set_ratio(features.value, target),
        )
        score = self.TEXT_FEATURE_WEIGHT * text_similarity

        normalized_target = normalize(target)
        if normalized_target and normalized_target in normalize(features.type_tag):
            score += self.CLASS_FEATURE_BONUS

        if features.usable:
            score += self.USABLE_FEATURE_BONUS

        return min(1.0, score)

    def clear_cache(self) -> None:
        self._levenshtein_cache.clear()

    def _levenshtein_distance(self, s1: str, s2: str) -> int:
        """Calculate Levenshtein (edit) distance between two strings."""
        if len(s1) < len(s2):
            return self._levenshtein_distance(s2, s1)

        if len(s2) == 0:
            return len(s1)

        previous_row = list(range(len(s2) + 1))
        for i, c1 in enumerate(s1):
            current_row = [i + 1]
            for j, c2 in enumerate(s2):
                insertions = previous_row[j + 1] + 1
                deletions = current_row[j] + 1
                substitutions = previous_row[j] + (c1 != c2)
                current_row.append(min(insertions, deletions, substitutions))
            previous_row = current_row

        return previous_row[-1]
