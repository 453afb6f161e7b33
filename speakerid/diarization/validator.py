"""
SpeakerValidator: plausibility score for a diarization result.

Five weighted signals, each in [0, 1]:
- consistency (0.3): per-speaker utterance durations are not wildly spread.
- transitions (0.2): speaker changes line up with conversational turns.
- content (0.2): each speaker keeps a steady formality register.
- timing (0.15): each speaker keeps a steady speaking rate (words/sec).
- voice (0.15): acoustic agreement. The batch path carries no audio, so this
  is a fixed text-side proxy (0.8 when any speaker was profiled, else 0.5).

Pure: validate() never mutates the result.
"""
from __future__ import annotations

import statistics
from collections import defaultdict

from speakerid.config import Settings, get_settings
from speakerid.diarization.heuristics import formality_score, is_likely_response, is_question, word_count
from speakerid.diarization.models import DiarizationResult, Utterance, ValidationIssue, ValidationReport

WEIGHTS = {
    "consistency": 0.3,
    "transitions": 0.2,
    "content": 0.2,
    "timing": 0.15,
    "voice": 0.15,
}

VOICE_PROXY_SCORE = 0.8
VOICE_PROXY_EMPTY = 0.5
FORMALITY_STDEV_LIMIT = 2.0
RATE_STDEV_RATIO = 0.5
DURATION_STDEV_RATIO = 2.0


def _group(utterances: tuple[Utterance, ...]) -> dict[str, list[tuple[int, Utterance]]]:
    groups: dict[str, list[tuple[int, Utterance]]] = defaultdict(list)
    for i, u in enumerate(utterances):
        groups[u.speaker_label].append((i, u))
    return groups


class SpeakerValidator:
    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._rapid_gap = settings.RAPID_SWITCH_GAP_SECONDS
        self._questionable_gap = settings.QUESTIONABLE_SWITCH_GAP_SECONDS

    def validate(self, result: DiarizationResult) -> ValidationReport:
        utterances = result.utterances
        if not utterances:
            return ValidationReport(overall_score=1.0)

        groups = _group(utterances)
        issues: list[ValidationIssue] = []

        consistency = self._consistency(utterances, groups, issues)
        transitions, transition_counts = self._transitions(utterances, issues)
        content, content_details = self._content(groups)
        timing = self._timing(groups)
        voice = VOICE_PROXY_SCORE if result.speakers else VOICE_PROXY_EMPTY

        overall = (
            WEIGHTS["consistency"] * consistency
            + WEIGHTS["transitions"] * transitions
            + WEIGHTS["content"] * content
            + WEIGHTS["timing"] * timing
            + WEIGHTS["voice"] * voice
        )
        return ValidationReport(
            overall_score=min(1.0, max(0.0, overall)),
            consistency=consistency,
            transitions=transitions,
            content=content,
            timing=timing,
            voice=voice,
            issue_count=len(issues),
            issues=issues,
            details={"transitions": transition_counts, "content": content_details},
        )

    def _consistency(
        self,
        utterances: tuple[Utterance, ...],
        groups: dict[str, list[tuple[int, Utterance]]],
        issues: list[ValidationIssue],
    ) -> float:
        found = 0
        for label, items in groups.items():
            durations = [u.duration_sec for _, u in items]
            mean = statistics.fmean(durations)
            stdev = statistics.pstdev(durations)
            if stdev > DURATION_STDEV_RATIO * mean:
                found += 1
                issues.append(
                    ValidationIssue(
                        "consistency",
                        items[0][0],
                        label,
                        f"duration stdev {stdev:.2f}s > {DURATION_STDEV_RATIO}x mean {mean:.2f}s",
                    )
                )
        return max(0.0, 1.0 - found / len(utterances))

    def _transitions(
        self, utterances: tuple[Utterance, ...], issues: list[ValidationIssue]
    ) -> tuple[float, dict[str, int]]:
        counts = {"total": 0, "valid": 0, "rapid_switch": 0, "missed_switch": 0, "questionable_switch": 0}
        for i in range(1, len(utterances)):
            prev, cur = utterances[i - 1], utterances[i]
            counts["total"] += 1
            gap = (cur.start_ms - prev.end_ms) / 1000.0
            changed = cur.speaker_label != prev.speaker_label
            response = is_likely_response(cur.text, prev.text)

            if changed and gap < self._rapid_gap:
                counts["rapid_switch"] += 1
                issues.append(ValidationIssue("rapid_switch", i, cur.speaker_label, f"gap {gap:.2f}s"))

            if response and not changed:
                counts["missed_switch"] += 1
                issues.append(
                    ValidationIssue("missed_switch", i, cur.speaker_label, "response kept the same speaker")
                )
            elif changed and not response and gap < self._questionable_gap:
                counts["questionable_switch"] += 1
                issues.append(
                    ValidationIssue(
                        "questionable_switch", i, cur.speaker_label, f"change without a turn cue, gap {gap:.2f}s"
                    )
                )
            else:
                counts["valid"] += 1

        if counts["total"] == 0:
            return 1.0, counts
        return counts["valid"] / counts["total"], counts

    def _content(self, groups: dict[str, list[tuple[int, Utterance]]]) -> tuple[float, dict[str, dict]]:
        consistent = 0
        details: dict[str, dict] = {}
        for label, items in groups.items():
            scores = [formality_score(u.text) for _, u in items]
            questions = sum(1 for _, u in items if is_question(u.text))
            stdev = statistics.pstdev(scores)
            if stdev < FORMALITY_STDEV_LIMIT:
                consistent += 1
            details[label] = {
                "formality_stdev": stdev,
                "questions": questions,
                "statements": len(items) - questions,
            }
        return consistent / len(groups), details

    def _timing(self, groups: dict[str, list[tuple[int, Utterance]]]) -> float:
        rated = 0
        consistent = 0
        for items in groups.values():
            rates = [word_count(u.text) / u.duration_sec for _, u in items if u.duration_ms > 0]
            if not rates:
                continue
            rated += 1
            mean = statistics.fmean(rates)
            stdev = statistics.pstdev(rates)
            # A single rate (or identical rates) is trivially steady.
            if stdev == 0 or stdev < RATE_STDEV_RATIO * mean:
                consistent += 1
        if rated == 0:
            return 1.0
        return consistent / rated
