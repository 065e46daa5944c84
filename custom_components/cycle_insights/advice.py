"""Rule-based guidance derived from symptom, mood and flow frequencies."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable

from .const import HEAVY_FLOW_THRESHOLD, SAD_MOOD_THRESHOLD, TOP_SYMPTOM_COUNT
from .helpers import CycleEntry

DEFAULT_ADVICE = (
    "Your cycle data looks healthy! Keep tracking to help me provide more "
    "personalized insights. Remember to listen to your body and practice "
    "self-care during your cycle."
)


@dataclass(frozen=True)
class AdviceContext:
    entries: list[CycleEntry]
    top_symptoms: list[str]

    def share(self, predicate: Callable[[CycleEntry], bool]) -> float:
        return sum(1 for e in self.entries if predicate(e)) / len(self.entries)


@dataclass(frozen=True)
class AdviceRule:
    key: str
    applies: Callable[[AdviceContext], bool]
    sentence: str


def _top_symptom(tag: str) -> Callable[[AdviceContext], bool]:
    return lambda ctx: tag in ctx.top_symptoms


# Evaluated in this order; new rules are appended, never reordered.
ADVICE_RULES: list[AdviceRule] = [
    AdviceRule(
        "cramps",
        _top_symptom("cramps"),
        "I notice you frequently experience cramps. Try gentle yoga, heat "
        "therapy, or magnesium supplements to help manage the pain.",
    ),
    AdviceRule(
        "mood_swings",
        _top_symptom("mood_swings"),
        "Your mood patterns suggest hormonal fluctuations. Consider tracking "
        "your emotions and practicing mindfulness or meditation.",
    ),
    AdviceRule(
        "fatigue",
        _top_symptom("fatigue"),
        "Fatigue seems to be a recurring issue. Ensure you're getting enough "
        "iron-rich foods and quality sleep during your cycle.",
    ),
    AdviceRule(
        "bloating",
        _top_symptom("bloating"),
        "To help with bloating, try reducing sodium intake and staying "
        "hydrated. Gentle movement can also help.",
    ),
    AdviceRule(
        "sad_mood",
        lambda ctx: ctx.share(lambda e: e.mood == "sad") > SAD_MOOD_THRESHOLD,
        "I see you've been feeling down during your cycles. This is completely "
        "normal, but consider talking to someone you trust or practicing "
        "self-care activities.",
    ),
    AdviceRule(
        "heavy_flow",
        lambda ctx: ctx.share(lambda e: e.flow == "heavy") > HEAVY_FLOW_THRESHOLD,
        "You often experience heavy flow. Make sure you're getting enough iron "
        "and consider discussing this with your healthcare provider if it's "
        "concerning you.",
    ),
]


def top_symptoms(entries: list[CycleEntry], count: int = TOP_SYMPTOM_COUNT) -> list[str]:
    """Most frequent tags; ties keep first-encountered order."""
    counts = Counter(tag for e in entries for tag in e.symptoms)
    return [tag for tag, _ in counts.most_common(count)]


def build_advice(
    entries: list[CycleEntry], rules: list[AdviceRule] | None = None
) -> str | None:
    """Compose advice text, or None with fewer than two entries."""
    if len(entries) < 2:
        return None
    ctx = AdviceContext(entries=list(entries), top_symptoms=top_symptoms(entries))
    fired = [r.sentence for r in (rules if rules is not None else ADVICE_RULES) if r.applies(ctx)]
    if not fired:
        return DEFAULT_ADVICE
    return " ".join(fired).strip()
