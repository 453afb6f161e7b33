"""Text heuristics shared by the validator and the correction engine."""
from __future__ import annotations

import re

RESPONSE_WORDS = ("yes", "no", "okay", "ok", "sure", "right", "exactly", "absolutely", "definitely")
QUESTION_WORDS = ("what", "how", "why", "when", "where", "who", "which")
FORMAL_MARKERS = ("sir", "madam", "please", "thank you", "certainly", "absolutely")
INFORMAL_MARKERS = ("yeah", "ok", "sure", "got it", "cool", "awesome")

_RESPONSE_START = re.compile(r"^\s*(?:%s)\b" % "|".join(RESPONSE_WORDS), re.IGNORECASE)
_QUESTION_START = re.compile(r"^\s*(?:%s)\b" % "|".join(QUESTION_WORDS), re.IGNORECASE)


def _marker_pattern(markers: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(r"\b(?:%s)\b" % "|".join(re.escape(m) for m in markers), re.IGNORECASE)


_FORMAL = _marker_pattern(FORMAL_MARKERS)
_INFORMAL = _marker_pattern(INFORMAL_MARKERS)


def is_likely_response(current: str, previous: str) -> bool:
    """
    True when `current` reads like an answer to `previous`: it opens with a
    response word, or `previous` asks something (contains "?" or opens with a wh-word).

    Wh-words count only at the start of `previous`: "I know what you mean" is
    not a question cue.
    """
    if _RESPONSE_START.search(current or ""):
        return True
    previous = previous or ""
    return "?" in previous or bool(_QUESTION_START.search(previous))


def formality_score(text: str) -> int:
    """Formal marker count minus informal marker count (whole words only)."""
    return len(_FORMAL.findall(text or "")) - len(_INFORMAL.findall(text or ""))


def word_count(text: str) -> int:
    return len((text or "").split())


def is_question(text: str) -> bool:
    return "?" in (text or "")
