"""Map transcribed speech to playback intents.

Rules are tried in order and the first match wins; anything no rule claims is
a conversational question and :func:`parse_intent` returns ``None`` for it.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from .intents import IntentKind, IntentMessage

DEFAULT_SEEK_SECONDS = 10
FASTER_SPEED = 1.25
SLOWER_SPEED = 0.75
NORMAL_SPEED = 1.0

_UNITS = {
    "zero": 0, "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4,
    "five": 5, "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19,
}
_TENS = {"twenty": 20, "thirty": 30, "forty": 40, "fifty": 50, "sixty": 60, "ninety": 90}

_NUMBER_WORD = "|".join(sorted([*_UNITS, *_TENS], key=len, reverse=True))
_AMOUNT = (
    rf"(?P<amount>\d+(?:\.\d+)?|(?:{_NUMBER_WORD})(?:[\s-](?:{_NUMBER_WORD}))?\b)"
)
_DURATION = (
    rf"(?:\s+(?:by|for))?(?:\s+{_AMOUNT})?"
    r"(?:\s*(?P<unit>seconds?|secs?|s|minutes?|mins?|m)\b)?"
)

_REWIND = re.compile(rf"\b(?:rewind|go back|back)\b{_DURATION}")
_FORWARD = re.compile(
    rf"\b(?:fast forward|go forward|skip ahead|forward|ahead|skip\b(?!\s+to\b))\b{_DURATION}"
)
_PAUSE = re.compile(r"\b(?:pause|stop)\b")
_PLAY = re.compile(r"\b(?:play|resume)\b")
_SPEED_VALUE = re.compile(r"\bspeed\b.*?(?P<rate>\d+(?:\.\d+)?)")
_SPEED_NORMAL = re.compile(r"\b(?:normal|regular) speed\b|\bspeed\b.*\bnormal\b")
_FASTER = re.compile(r"\bfaster\b")
_SLOWER = re.compile(r"\bslower\b")
_VOLUME = re.compile(r"\bvolume\b.*?(?P<percent>\d{1,3})\s*%?")
_MUTE = re.compile(r"\bmute\b")
_JUMP = re.compile(r"\b(?:jump|go|skip) to\s+(?P<phrase>.+)")

_TRAILING_PUNCTUATION = ".!?,;:"


def _word_amount(words: str) -> int | None:
    total = 0
    for word in re.split(r"[\s-]+", words):
        if word in _TENS:
            total += _TENS[word]
        elif word in _UNITS:
            total += _UNITS[word]
        else:
            return None
    return total


def _seconds(match: re.Match[str]) -> int | float:
    amount_text = match.group("amount")
    unit = match.group("unit")
    # "go back a bit" is not one second; "a"/"an" only count before a unit
    if amount_text is None or (amount_text in ("a", "an") and unit is None):
        return DEFAULT_SEEK_SECONDS

    if amount_text[0].isdigit():
        amount: int | float = float(amount_text)
        if amount.is_integer():
            amount = int(amount)
    else:
        word_amount = _word_amount(amount_text)
        if word_amount is None:
            return DEFAULT_SEEK_SECONDS
        amount = word_amount

    if unit is not None and unit.startswith("m"):
        amount *= 60
    return amount


def _seek(pattern: re.Pattern[str], kind: IntentKind) -> Callable[[str], IntentMessage | None]:
    def rule(text: str) -> IntentMessage | None:
        match = pattern.search(text)
        if match is None:
            return None
        return IntentMessage.create(kind, _seconds(match))

    return rule


def _fixed(pattern: re.Pattern[str], kind: IntentKind) -> Callable[[str], IntentMessage | None]:
    def rule(text: str) -> IntentMessage | None:
        return IntentMessage.create(kind) if pattern.search(text) else None

    return rule


def _speed(text: str) -> IntentMessage | None:
    match = _SPEED_VALUE.search(text)
    if match:
        return IntentMessage.create(IntentKind.SET_SPEED, float(match.group("rate")))
    if _SPEED_NORMAL.search(text):
        return IntentMessage.create(IntentKind.SET_SPEED, NORMAL_SPEED)
    if _FASTER.search(text):
        return IntentMessage.create(IntentKind.SET_SPEED, FASTER_SPEED)
    if _SLOWER.search(text):
        return IntentMessage.create(IntentKind.SET_SPEED, SLOWER_SPEED)
    return None


def _volume(text: str) -> IntentMessage | None:
    match = _VOLUME.search(text)
    if match:
        return IntentMessage.create(IntentKind.SET_VOLUME, int(match.group("percent")))
    if _MUTE.search(text):
        return IntentMessage.create(IntentKind.SET_VOLUME, 0)
    return None


def _jump(text: str) -> IntentMessage | None:
    match = _JUMP.search(text)
    if match is None:
        return None
    phrase = match.group("phrase").strip().rstrip(_TRAILING_PUNCTUATION).strip()
    if not phrase:
        return None
    return IntentMessage.create(IntentKind.JUMP_TO_PHRASE, phrase)


_RULES: tuple[Callable[[str], IntentMessage | None], ...] = (
    _seek(_REWIND, IntentKind.REWIND),
    _seek(_FORWARD, IntentKind.FORWARD),
    _fixed(_PAUSE, IntentKind.PAUSE),
    _fixed(_PLAY, IntentKind.PLAY),
    _speed,
    _volume,
    _jump,
)


def parse_intent(text: str | None) -> IntentMessage | None:
    """Return the playback intent ``text`` asks for, or None for a question."""
    normalized = (text or "").strip().lower()
    if not normalized:
        return None
    for rule in _RULES:
        intent = rule(normalized)
        if intent is not None:
            return intent
    return None


__all__ = ["parse_intent"]
