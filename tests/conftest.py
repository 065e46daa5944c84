from __future__ import annotations

import datetime as dt
import os
import shutil
from pathlib import Path

import pytest
from pytest_homeassistant_custom_component.common import MockConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.const import CONF_NAME

from custom_components.cycle_insights.const import CONF_USER_ID
from custom_components.cycle_insights.helpers import CycleEntry

# ----- constants -----
INTEGRATION_DOMAIN = "cycle_insights"
TRACKER_NAME = "Cycle Tracker"
PRIMARY_USER = "cycle_tracker"

# repo root:  <repo>/tests/conftest.py  -> parents[1] = <repo>
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "custom_components" / INTEGRATION_DOMAIN

# HA test runner always scans tests/custom_components/*
TESTS_CC_ROOT = Path(__file__).resolve().parent / "custom_components"
DST = TESTS_CC_ROOT / INTEGRATION_DOMAIN


# Point PHACC at the repo's custom_components before its fixtures initialize.
os.environ.setdefault(
    "PYTEST_HOMEASSISTANT_CUSTOM_COMPONENTS",
    str(REPO_ROOT / "custom_components"),
)

# 1) Mirror the integration under tests/custom_components so HA finds it for sure
@pytest.fixture(autouse=True, scope="session")
def _mirror_integration_into_tests_path():
    assert SRC.exists(), f"Expected integration at: {SRC}"
    TESTS_CC_ROOT.mkdir(parents=True, exist_ok=True)
    if DST.exists():
        shutil.rmtree(DST)
    shutil.copytree(SRC, DST)
    yield
    # Keep the mirror for post-failure inspection


# 2) Enable custom integrations for the whole session (PHACC)
@pytest.fixture(autouse=True)
def _enable_custom_integrations(enable_custom_integrations):
    yield


# 3) Standard entry + setup fixtures for your tests
@pytest.fixture
def config_entry(hass: HomeAssistant) -> MockConfigEntry:
    entry = MockConfigEntry(
        domain=INTEGRATION_DOMAIN,
        data={CONF_NAME: TRACKER_NAME, CONF_USER_ID: PRIMARY_USER},
        options={},
        title=TRACKER_NAME,
        unique_id=INTEGRATION_DOMAIN,
    )
    entry.add_to_hass(hass)
    return entry


@pytest.fixture
async def setup_integration(hass: HomeAssistant, config_entry: MockConfigEntry):
    assert await hass.config_entries.async_setup(config_entry.entry_id)
    await hass.async_block_till_done()
    return config_entry


@pytest.fixture
def make_entry():
    """Factory for CycleEntry rows; dates may be ISO strings."""

    def _make(
        day: str | dt.date,
        user_id: str = PRIMARY_USER,
        flow: str = "medium",
        mood: str = "neutral",
        symptoms: list[str] | None = None,
    ) -> CycleEntry:
        if isinstance(day, str):
            day = dt.date.fromisoformat(day)
        return CycleEntry(user_id=user_id, date=day, flow=flow, mood=mood, symptoms=symptoms or [])

    return _make
