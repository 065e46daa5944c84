from __future__ import annotations

from typing import Any, Dict

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.config_entries import ConfigEntry, OptionsFlow
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.selector import (
    TextSelector,
    TextSelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    SelectSelector,
    SelectSelectorConfig,
    SelectOptionDict,
    TimeSelector,
    TimeSelectorConfig,
)
from homeassistant.util import slugify

from .const import (
    DOMAIN,
    CONF_NAME,
    CONF_USER_ID,
    CONF_ENTRY_WINDOW,
    CONF_ADVICE_DELAY,
    CONF_ALERT_POLICY,
    CONF_NOTIFY_SERVICES,
    CONF_DAILY_RECOMPUTE_TIME,
    DEFAULT_NAME,
    DEFAULT_ENTRY_WINDOW,
    DEFAULT_ADVICE_DELAY,
    DEFAULT_ALERT_POLICY,
    DEFAULT_DAILY_RECOMPUTE_TIME,
    ALERT_POLICY_APPEND,
    ALERT_POLICY_SINGLE_OPEN,
)


def _list_notify_services(hass: HomeAssistant) -> list[str]:
    """Return notify services in 'notify.x' form, sorted."""
    services = hass.services.async_services().get("notify", {})
    return [f"notify.{name}" for name in sorted(services.keys())]


class ConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle the config flow."""

    VERSION = 1

    async def async_step_user(self, user_input: Dict[str, Any] | None = None):
        if user_input is None:
            schema = vol.Schema(
                {
                    vol.Required(CONF_NAME, default=DEFAULT_NAME): TextSelector(
                        TextSelectorConfig(type="text")
                    ),
                }
            )
            return self.async_show_form(step_id="user", data_schema=schema)

        # Singleton: only one instance allowed
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured()

        name = user_input[CONF_NAME]
        return self.async_create_entry(
            title=name,
            data={CONF_NAME: name, CONF_USER_ID: slugify(name)},
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        return OptionsFlowHandler(config_entry)


class OptionsFlowHandler(OptionsFlow):
    """Options for Cycle Insights."""

    def __init__(self, config_entry: ConfigEntry) -> None:
        # IMPORTANT: Do NOT assign to self.config_entry (deprecated in 2025.12)
        self._entry = config_entry

    async def async_step_init(self, user_input: Dict[str, Any] | None = None):
        if user_input is not None:
            # NumberSelector hands back floats
            user_input[CONF_ENTRY_WINDOW] = int(
                user_input.get(CONF_ENTRY_WINDOW, DEFAULT_ENTRY_WINDOW)
            )
            user_input[CONF_ADVICE_DELAY] = int(
                user_input.get(CONF_ADVICE_DELAY, DEFAULT_ADVICE_DELAY)
            )
            return self.async_create_entry(title="", data=user_input)

        o = self._entry.options or {}

        notify_options = [
            SelectOptionDict(label=s, value=s) for s in _list_notify_services(self.hass)
        ]
        policy_options = [
            SelectOptionDict(label="Alert on every late check", value=ALERT_POLICY_APPEND),
            SelectOptionDict(label="Keep one open late alert", value=ALERT_POLICY_SINGLE_OPEN),
        ]

        schema = vol.Schema(
            {
                vol.Optional(
                    CONF_ENTRY_WINDOW,
                    default=o.get(CONF_ENTRY_WINDOW, DEFAULT_ENTRY_WINDOW),
                ): NumberSelector(
                    NumberSelectorConfig(min=10, max=365, step=1, mode=NumberSelectorMode.BOX)
                ),
                vol.Optional(
                    CONF_ADVICE_DELAY,
                    default=o.get(CONF_ADVICE_DELAY, DEFAULT_ADVICE_DELAY),
                ): NumberSelector(
                    NumberSelectorConfig(
                        min=0,
                        max=3600,
                        step=1,
                        mode=NumberSelectorMode.BOX,
                        unit_of_measurement="s",
                    )
                ),
                vol.Optional(
                    CONF_ALERT_POLICY,
                    default=o.get(CONF_ALERT_POLICY, DEFAULT_ALERT_POLICY),
                ): SelectSelector(
                    SelectSelectorConfig(options=policy_options, mode="dropdown")
                ),
                vol.Optional(
                    CONF_DAILY_RECOMPUTE_TIME,
                    default=o.get(CONF_DAILY_RECOMPUTE_TIME, DEFAULT_DAILY_RECOMPUTE_TIME),
                ): TimeSelector(TimeSelectorConfig()),
                vol.Optional(
                    CONF_NOTIFY_SERVICES,
                    default=o.get(CONF_NOTIFY_SERVICES, []),
                ): SelectSelector(
                    SelectSelectorConfig(multiple=True, mode="list", options=notify_options)
                ),
            }
        )

        return self.async_show_form(step_id="init", data_schema=schema)
