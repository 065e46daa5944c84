from __future__ import annotations

import datetime as dt

import pytest

from custom_components.cycle_insights.advice import (
    ADVICE_RULES,
    DEFAULT_ADVICE,
    AdviceRule,
    build_advice,
    top_symptoms,
)

pytestmark = pytest.mark.asyncio

SENTENCES = {rule.key: rule.sentence for rule in ADVICE_RULES}


def _entries(make_entry, specs):
    start = dt.date(2024, 1, 1)
    return [
        make_entry(start + dt.timedelta(days=28 * i), **spec) for i, spec in enumerate(specs)
    ]


async def test_needs_two_entries(make_entry):
    assert build_advice([]) is None
    assert build_advice([make_entry("2024-01-01", symptoms=["cramps"])]) is None


async def test_cramps_and_low_mood(make_entry):
    entries = _entries(
        make_entry,
        [
            {"symptoms": ["cramps"], "mood": "sad"},
            {"symptoms": ["cramps"], "mood": "sad"},
            {"symptoms": ["cramps"], "mood": "sad"},
            {"symptoms": ["cramps"], "mood": "neutral"},
            {"symptoms": [], "mood": "happy"},
        ],
    )
    advice = build_advice(entries)
    assert SENTENCES["cramps"] in advice
    assert SENTENCES["sad_mood"] in advice
    assert advice.index(SENTENCES["cramps"]) < advice.index(SENTENCES["sad_mood"])
    assert DEFAULT_ADVICE not in advice
    assert advice == advice.strip()


async def test_symptom_sentences_follow_rule_order_not_frequency(make_entry):
    entries = _entries(
        make_entry,
        [
            {"symptoms": ["bloating", "cramps"]},
            {"symptoms": ["bloating"]},
            {"symptoms": ["bloating"]},
        ],
    )
    advice = build_advice(entries)
    assert advice == f"{SENTENCES['cramps']} {SENTENCES['bloating']}"


async def test_only_top_three_symptoms_count(make_entry):
    entries = _entries(
        make_entry,
        [
            {"symptoms": ["headache", "acne"]},
            {"symptoms": ["headache", "acne", "insomnia"]},
            {"symptoms": ["insomnia", "fatigue"]},
        ],
    )
    assert top_symptoms(entries) == ["headache", "acne", "insomnia"]
    assert build_advice(entries) == DEFAULT_ADVICE


async def test_ties_keep_first_encountered_order(make_entry):
    entries = _entries(
        make_entry,
        [{"symptoms": ["acne", "headache"]}, {"symptoms": ["insomnia", "fatigue"]}],
    )
    assert top_symptoms(entries) == ["acne", "headache", "insomnia"]
    assert SENTENCES["fatigue"] not in build_advice(entries)


async def test_heavy_flow_needs_more_than_sixty_percent(make_entry):
    mostly_heavy = _entries(make_entry, [{"flow": "heavy"}] * 4 + [{"flow": "light"}])
    assert build_advice(mostly_heavy) == SENTENCES["heavy_flow"]

    three_of_five = _entries(make_entry, [{"flow": "heavy"}] * 3 + [{"flow": "light"}] * 2)
    assert build_advice(three_of_five) == DEFAULT_ADVICE


async def test_sad_share_at_threshold_does_not_fire(make_entry):
    entries = _entries(make_entry, [{"mood": "sad"}] * 2 + [{"mood": "happy"}] * 3)
    assert build_advice(entries) == DEFAULT_ADVICE


async def test_extra_rules_append_after_builtin_rules(make_entry):
    rules = ADVICE_RULES + [
        AdviceRule("always", lambda ctx: True, "Keep logging daily."),
    ]
    entries = _entries(make_entry, [{"symptoms": ["fatigue"]}, {"symptoms": ["fatigue"]}])
    assert build_advice(entries, rules=rules) == f"{SENTENCES['fatigue']} Keep logging daily."
