# -*- coding: utf-8 -*-
"""Reduction of engine observations into a single result, plus text helpers."""

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .ocr_engine import TextObservation

LINE_SEPARATOR = "\n"

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6


@dataclass(frozen=True)
class RecognitionResult:
    """Text of one recognition call, best lines first."""
    combined_text: str
    average_confidence: float


def sort_by_confidence(observations: Iterable[TextObservation]) -> List[TextObservation]:
    """Highest confidence first. ``sorted`` is stable, so ties keep engine order."""
    return sorted(observations, key=lambda obs: obs.confidence, reverse=True)


def average_confidence(observations: Sequence[TextObservation]) -> float:
    if not observations:
        return 0.0
    return sum(obs.confidence for obs in observations) / len(observations)


def reduce_observations(observations: Iterable[TextObservation]) -> RecognitionResult:
    ranked = sort_by_confidence(observations)
    return RecognitionResult(
        combined_text=LINE_SEPARATOR.join(obs.text for obs in ranked),
        average_confidence=average_confidence(ranked),
    )


def filter_lines(text: str, query: str) -> str:
    """
    Keeps the lines of ``text`` containing ``query``, ignoring case.
    An empty query leaves the text untouched.
    """
    if not query:
        return text
    needle = query.lower()
    return LINE_SEPARATOR.join(line for line in text.split(LINE_SEPARATOR) if needle in line.lower())


def confidence_level(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def format_confidence(confidence: float) -> str:
    return f"{confidence * 100:.1f}%"
