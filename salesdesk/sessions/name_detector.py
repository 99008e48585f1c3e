from __future__ import annotations

"""
Best-effort customer-name detection over live transcript fragments.

Design intent:
- Keep the script/locale specifics in a swappable ScriptProfile.
- Try matchers from most to least specific; first hit wins.
- Never raise on odd input: no match is a normal outcome.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from salesdesk.internal_core.config import DEFAULT_INTRO_PHRASE

Matcher = Callable[[str], Optional[str]]

_INTRO_STRIP_RE = re.compile(r"[\s.,!?~'\"`·…:;()\[\]\-]+")


@dataclass(frozen=True)
class ScriptProfile:
    name: str
    char_class: str
    min_name_len: int = 2
    max_name_len: int = 5
    role_honorifics: tuple[str, ...] = ()
    plain_honorifics: tuple[str, ...] = ()
    confirmations: tuple[str, ...] = ()
    stopwords: frozenset[str] = field(default_factory=frozenset)


KOREAN_PROFILE = ScriptProfile(
    name="ko",
    char_class="가-힣",
    role_honorifics=("고객님", "사장님", "대표님", "선생님", "회원님"),
    plain_honorifics=("님", "씨"),
    confirmations=(
        "맞으신가요",
        "맞으시죠",
        "맞습니까",
        "맞나요",
        "되시나요",
        "되시죠",
        "이신가요",
        "이시죠",
    ),
    stopwords=frozenset(
        {
            "고객",
            "사장",
            "대표",
            "선생",
            "회원",
            "여러분",
            "상담사",
            "안녕하세요",
            "감사합니다",
            "실례합니다",
            "죄송합니다",
        }
    ),
)


def _alternation(options: tuple[str, ...]) -> str:
    # Longest first so "고객님" wins over "님".
    return "|".join(re.escape(item) for item in sorted(options, key=len, reverse=True))


class NameDetector:
    def __init__(self, profile: ScriptProfile = KOREAN_PROFILE) -> None:
        self._profile = profile
        self._matchers: list[Matcher] = self._build_matchers(profile)

    @property
    def profile(self) -> ScriptProfile:
        return self._profile

    def detect(self, text: object) -> Optional[str]:
        if not isinstance(text, str) or not text.strip():
            return None
        for matcher in self._matchers:
            found = matcher(text)
            if found:
                return found
        return None

    def _build_matchers(self, profile: ScriptProfile) -> list[Matcher]:
        cc = profile.char_class
        name = (
            rf"(?<![{cc}])(?P<name>[{cc}]{{{profile.min_name_len},{profile.max_name_len}}}?)"
        )
        patterns: list[str] = []
        all_honorifics = profile.role_honorifics + profile.plain_honorifics
        if all_honorifics and profile.confirmations:
            patterns.append(
                rf"{name}\s*(?:{_alternation(all_honorifics)})\s*(?:{_alternation(profile.confirmations)})"
            )
        if profile.role_honorifics:
            patterns.append(rf"{name}\s*(?:{_alternation(profile.role_honorifics)})")
        if profile.plain_honorifics:
            patterns.append(rf"{name}\s*(?:{_alternation(profile.plain_honorifics)})")
        return [self._pattern_matcher(re.compile(item)) for item in patterns]

    def _pattern_matcher(self, pattern: re.Pattern[str]) -> Matcher:
        stopwords = self._profile.stopwords

        def _match(text: str) -> Optional[str]:
            for match in pattern.finditer(text):
                candidate = match.group("name")
                if candidate not in stopwords:
                    return candidate
            return None

        return _match


def normalize_for_intro(text: object) -> str:
    if not isinstance(text, str):
        return ""
    return _INTRO_STRIP_RE.sub("", text)


def is_intro_phrase(text: object, phrase: str = DEFAULT_INTRO_PHRASE) -> bool:
    target = normalize_for_intro(phrase)
    if not target:
        return False
    return target in normalize_for_intro(text)


_DEFAULT_DETECTOR = NameDetector()


def detect_customer_name(text: object) -> Optional[str]:
    return _DEFAULT_DETECTOR.detect(text)
