from __future__ import annotations

import datetime as dt

import pytest
from freezegun import freeze_time
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_component import async_update_entity

from custom_components.cycle_insights.const import DOMAIN
from custom_components.cycle_insights.helpers import daily_quote, today_local

pytestmark = pytest.mark.asyncio

NEXT_PERIOD = "sensor.cycle_tracker_next_period"
ADVICE = "sensor.cycle_tracker_cycle_advice"
LATE = "binary_sensor.cycle_tracker_period_late"


async def _refresh(hass: HomeAssistant) -> None:
    for entity_id in (NEXT_PERIOD, ADVICE, LATE):
        await async_update_entity(hass, entity_id)


async def test_entities_without_data(hass: HomeAssistant, setup_integration):
    await _refresh(hass)
    assert hass.states.get(NEXT_PERIOD).state == "unknown"
    assert hass.states.get(ADVICE).state == "unknown"
    assert hass.states.get(LATE).state == "off"


async def test_entities_reflect_recompute(
    hass: HomeAssistant, setup_integration, config_entry, make_entry
):
    runtime = hass.data[DOMAIN][config_entry.entry_id]
    today = today_local(hass).date()

    await runtime.async_log_entry(
        make_entry(today - dt.timedelta(days=40), symptoms=["bloating"])
    )
    await runtime.async_log_entry(
        make_entry(today - dt.timedelta(days=12), symptoms=["bloating"])
    )
    await hass.async_block_till_done()
    await _refresh(hass)

    state = hass.states.get(NEXT_PERIOD)
    assert state.state == (today + dt.timedelta(days=16)).isoformat()
    assert state.attributes["days_until"] == 16
    assert state.attributes["confidence"] == 75
    assert state.attributes["confidence_label"] == "Medium"
    assert len(state.attributes["predictions"]) == 5

    advice = hass.states.get(ADVICE)
    assert advice.state.startswith("To help with bloating")
    assert advice.attributes["advice"] == advice.state
    assert "daily_quote" in advice.attributes

    assert hass.states.get(LATE).state == "off"


async def test_late_binary_sensor(hass: HomeAssistant, setup_integration, config_entry, make_entry):
    runtime = hass.data[DOMAIN][config_entry.entry_id]
    today = today_local(hass).date()
    await runtime.async_log_entry(make_entry(today - dt.timedelta(days=90)))
    await runtime.async_log_entry(make_entry(today - dt.timedelta(days=60)))
    await hass.async_block_till_done()
    await _refresh(hass)

    state = hass.states.get(LATE)
    assert state.state == "on"
    assert "30 days late" in state.attributes["message"]

    await runtime.store.async_resolve_alert("cycle_tracker", state.attributes["alert_id"])
    await async_update_entity(hass, LATE)
    assert hass.states.get(LATE).state == "off"


async def test_advice_sensor_quote_follows_day(hass: HomeAssistant, setup_integration):
    with freeze_time("2025-01-01 20:00:00"):
        await async_update_entity(hass, ADVICE)
        state = hass.states.get(ADVICE)
        assert state.attributes["daily_quote"] == daily_quote(dt.date(2025, 1, 1))
        assert state.attributes["daily_quote"] == "Your body is doing something incredible - honor it"
