from __future__ import annotations

from homeassistant.components.binary_sensor import BinarySensorEntity, BinarySensorDeviceClass
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.device_registry import DeviceEntryType

from .const import DOMAIN, ALERT_LATE, ATTR_ALERT_ID, ATTR_MESSAGE


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, async_add_entities) -> None:
    runtime = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([PeriodLateBinary(hass, entry.entry_id, runtime)])


class PeriodLateBinary(BinarySensorEntity):
    """On while the primary user has an unresolved late alert."""

    _attr_has_entity_name = True
    _attr_device_class = BinarySensorDeviceClass.PROBLEM

    def __init__(self, hass: HomeAssistant, entry_id: str, runtime) -> None:
        self.hass = hass
        self._runtime = runtime
        self._entry_id = entry_id
        self._attr_name = "Period late"
        self._attr_unique_id = f"{entry_id}_period_late"
        self._attr_is_on = False

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._entry_id)},
            name=self._runtime.name,
            manufacturer="Custom",
            model="Cycle Insights",
            entry_type=DeviceEntryType.SERVICE,
        )

    async def async_update(self) -> None:
        late = [
            a
            for a in self._runtime.store.fetch_unresolved_alerts(self._runtime.primary_user)
            if a.kind == ALERT_LATE
        ]
        self._attr_is_on = bool(late)
        # newest first
        self._attr_extra_state_attributes = (
            {ATTR_MESSAGE: late[0].message, ATTR_ALERT_ID: late[0].id} if late else {}
        )
