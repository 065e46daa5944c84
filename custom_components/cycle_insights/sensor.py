from __future__ import annotations

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.device_registry import DeviceEntryType

from .const import (
    DOMAIN,
    ATTR_ADVICE,
    ATTR_CONFIDENCE,
    ATTR_CONFIDENCE_LABEL,
    ATTR_DAILY_QUOTE,
    ATTR_DAYS_UNTIL,
    ATTR_GENERATED_AT,
    ATTR_PREDICTIONS,
)
from .helpers import confidence_label, daily_quote, days_until_next_period, today_local

# HA rejects states longer than this
_MAX_STATE_LENGTH = 255


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, async_add_entities) -> None:
    runtime = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        [
            NextPeriodSensor(hass, entry.entry_id, runtime),
            CycleAdviceSensor(hass, entry.entry_id, runtime),
        ]
    )


class _BaseCycleSensor(SensorEntity):
    _attr_has_entity_name = True

    def __init__(self, hass: HomeAssistant, entry_id: str, runtime) -> None:
        self.hass = hass
        self._runtime = runtime
        self._entry_id = entry_id

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._entry_id)},
            name=self._runtime.name,
            manufacturer="Custom",
            model="Cycle Insights",
            entry_type=DeviceEntryType.SERVICE,
        )


class NextPeriodSensor(_BaseCycleSensor):
    """Start date of the nearest predicted window, with the full forecast attached."""

    _attr_icon = "mdi:calendar-heart"

    def __init__(self, hass: HomeAssistant, entry_id: str, runtime) -> None:
        super().__init__(hass, entry_id, runtime)
        self._attr_name = "Next period"
        self._attr_unique_id = f"{entry_id}_next_period"

    async def async_update(self) -> None:
        predictions = self._runtime.store.fetch_predictions(self._runtime.primary_user)
        if not predictions:
            self._attr_native_value = None
            self._attr_extra_state_attributes = {ATTR_PREDICTIONS: []}
            return

        first = predictions[0]
        self._attr_native_value = first.start.isoformat()
        self._attr_extra_state_attributes = {
            ATTR_DAYS_UNTIL: days_until_next_period(predictions, today_local(self.hass).date()),
            ATTR_CONFIDENCE: first.confidence,
            ATTR_CONFIDENCE_LABEL: confidence_label(first.confidence),
            ATTR_PREDICTIONS: [
                {
                    "start": p.start.isoformat(),
                    "end": p.end.isoformat(),
                    "confidence": p.confidence,
                }
                for p in predictions
            ],
        }


class CycleAdviceSensor(_BaseCycleSensor):
    """Latest personalized advice; the full text lives in the attributes."""

    _attr_icon = "mdi:lightbulb-on-outline"

    def __init__(self, hass: HomeAssistant, entry_id: str, runtime) -> None:
        super().__init__(hass, entry_id, runtime)
        self._attr_name = "Cycle advice"
        self._attr_unique_id = f"{entry_id}_cycle_advice"

    async def async_update(self) -> None:
        advice = self._runtime.store.fetch_latest_advice(self._runtime.primary_user)
        quote = daily_quote(today_local(self.hass).date())
        if advice is None:
            self._attr_native_value = None
            self._attr_extra_state_attributes = {ATTR_DAILY_QUOTE: quote}
            return

        text = advice.text
        if len(text) > _MAX_STATE_LENGTH:
            text = text[: _MAX_STATE_LENGTH - 3].rstrip() + "..."
        self._attr_native_value = text
        self._attr_extra_state_attributes = {
            ATTR_ADVICE: advice.text,
            ATTR_GENERATED_AT: advice.generated_at.isoformat(),
            ATTR_DAILY_QUOTE: quote,
        }
