"""
Ensemble combination: confidence-weighted voting over several diarization results.

1. The reference timeline is the member with the highest weight x confidence.
2. Each other member's labels are mapped onto reference labels by greatest
   total time overlap (no overlap keeps the member's own label).
3. For each reference utterance, every member votes for the mapped label of its
   most-overlapping utterance with weight x confidence; the largest vote wins.
4. Utterance confidence = winning vote / sum of member weights, so a single
   member reproduces its own confidence.
"""
from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from dataclasses import dataclass

from speakerid.diarization.models import DiarizationResult, Utterance

logger = logging.getLogger(__name__)

ENSEMBLE_METHOD = "ensemble"


@dataclass
class EnsembleMember:
    name: str
    weight: float
    result: DiarizationResult

    @property
    def strength(self) -> float:
        return self.weight * self.result.confidence


def _overlap(a: Utterance, b: Utterance) -> float:
    return max(0.0, min(a.end_ms, b.end_ms) - max(a.start_ms, b.start_ms))


def _label_mapping(member: DiarizationResult, reference: DiarizationResult) -> dict[str, str]:
    totals: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for u in member.utterances:
        for r in reference.utterances:
            ov = _overlap(u, r)
            if ov > 0:
                totals[u.speaker_label][r.speaker_label] += ov
    mapping: dict[str, str] = {}
    for label in member.speakers:
        candidates = totals.get(label)
        if candidates:
            mapping[label] = max(candidates.items(), key=lambda kv: kv[1])[0]
        else:
            mapping[label] = label
    return mapping


def _best_overlap(target: Utterance, utterances: tuple[Utterance, ...]) -> Utterance | None:
    best: Utterance | None = None
    best_ov = 0.0
    for u in utterances:
        ov = _overlap(target, u)
        if ov > best_ov:
            best, best_ov = u, ov
    return best


def combine(members: list[EnsembleMember]) -> DiarizationResult:
    """Combine member results into one ensemble result. Raises ValueError on an empty list."""
    if not members:
        raise ValueError("ensemble needs at least one member")

    weights = [max(0.0, m.weight) for m in members]
    if sum(weights) <= 0:
        weights = [1.0] * len(members)
        members = [dataclasses.replace(m, weight=1.0) for m in members]
    total_weight = sum(weights)

    reference = max(members, key=lambda m: m.strength)
    others = [m for m in members if m is not reference]
    mappings = {id(m): _label_mapping(m.result, reference.result) for m in others}

    combined: list[Utterance] = []
    for ref_u in reference.result.utterances:
        votes: dict[str, float] = {ref_u.speaker_label: reference.strength}
        for m in others:
            hit = _best_overlap(ref_u, m.result.utterances)
            if hit is None:
                continue
            label = mappings[id(m)][hit.speaker_label]
            votes[label] = votes.get(label, 0.0) + m.strength
        # Ties keep the reference label (inserted first).
        winner, vote = max(votes.items(), key=lambda kv: kv[1])
        combined.append(dataclasses.replace(ref_u, speaker_label=winner, confidence=vote / total_weight))

    if combined:
        confidence = sum(u.confidence for u in combined) / len(combined)
    else:
        confidence = sum(m.strength for m in members) / total_weight

    logger.info(
        "Ensemble of %s: reference=%s, confidence=%.3f",
        [m.name for m in members], reference.name, confidence,
    )
    return DiarizationResult(
        utterances=tuple(combined),
        confidence=confidence,
        method=ENSEMBLE_METHOD,
        duration_ms=reference.result.duration_ms,
        metadata={
            "ensemble_members": [
                {"method": m.name, "weight": m.weight, "confidence": m.result.confidence} for m in members
            ],
            "ensemble_reference": reference.name,
        },
    )
