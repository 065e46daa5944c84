from __future__ import annotations

import datetime as dt
import logging
from typing import Optional, Callable, Any, Dict

import voluptuous as vol

from homeassistant.core import HomeAssistant, callback, ServiceCall
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import event as hass_event
from homeassistant.components import websocket_api
from homeassistant.helpers import config_validation as cv
from homeassistant.util import slugify

from .const import (
    DOMAIN,
    PLATFORMS,
    CONF_NAME,
    CONF_USER_ID,
    CONF_ENTRY_WINDOW,
    CONF_ADVICE_DELAY,
    CONF_ALERT_POLICY,
    CONF_NOTIFY_SERVICES,
    CONF_DAILY_RECOMPUTE_TIME,
    DEFAULT_ENTRY_WINDOW,
    DEFAULT_ADVICE_DELAY,
    DEFAULT_ALERT_POLICY,
    DEFAULT_DAILY_RECOMPUTE_TIME,
    ADVICE_MAX_ATTEMPTS,
    ADVICE_RETRY_BASE_SECONDS,
    EVENT_ADVICE_FAILED,
    FLOW_LEVELS,
    MOODS,
    LEVELS,
    ATTR_ENTRY_ID,
    ATTR_USER_ID,
    ATTR_DATE,
    ATTR_FLOW,
    ATTR_MOOD,
    ATTR_SYMPTOMS,
    ATTR_NOTES,
    ATTR_CRAMP_INTENSITY,
    ATTR_ENERGY_LEVEL,
    ATTR_CRAVINGS,
    ATTR_HUNGER_LEVEL,
    ATTR_SLEEP_QUALITY,
    ATTR_STRESS_LEVEL,
    ATTR_EMOTIONAL_STATE,
    ATTR_ALERT_ID,
)
from .helpers import (
    CycleEntry,
    coerce_date,
    confidence_label,
    days_until_next_period,
    parse_time,
    today_local,
)
from .store import PersistenceError, PredictionStore, RecomputeResult

_LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

ENTRY_FIELDS = {
    vol.Required(ATTR_DATE): cv.date,
    vol.Required(ATTR_FLOW): vol.In(FLOW_LEVELS),
    vol.Required(ATTR_MOOD): vol.In(MOODS),
    vol.Optional(ATTR_SYMPTOMS, default=list): vol.All(cv.ensure_list, [cv.string]),
    vol.Optional(ATTR_NOTES): cv.string,
    vol.Optional(ATTR_CRAMP_INTENSITY): vol.All(vol.Coerce(int), vol.Range(min=0, max=5)),
    vol.Optional(ATTR_ENERGY_LEVEL): vol.In(LEVELS),
    vol.Optional(ATTR_CRAVINGS, default=list): vol.All(cv.ensure_list, [cv.string]),
    vol.Optional(ATTR_HUNGER_LEVEL): vol.All(vol.Coerce(int), vol.Range(min=1, max=5)),
    vol.Optional(ATTR_SLEEP_QUALITY): vol.All(vol.Coerce(int), vol.Range(min=1, max=5)),
    vol.Optional(ATTR_STRESS_LEVEL): vol.In(LEVELS),
    vol.Optional(ATTR_EMOTIONAL_STATE, default=list): vol.All(cv.ensure_list, [cv.string]),
}

TARGET_FIELDS = {
    vol.Optional(ATTR_ENTRY_ID): cv.string,
    vol.Optional(ATTR_USER_ID): cv.string,
}

LOG_ENTRY_SCHEMA = vol.Schema({**TARGET_FIELDS, **ENTRY_FIELDS})
RECOMPUTE_SCHEMA = vol.Schema(TARGET_FIELDS)
RESOLVE_ALERT_SCHEMA = vol.Schema({**TARGET_FIELDS, vol.Required(ATTR_ALERT_ID): cv.string})


def entry_from_data(user_id: str, data: Dict[str, Any]) -> CycleEntry:
    return CycleEntry(
        user_id=user_id,
        date=coerce_date(data[ATTR_DATE]),
        flow=data[ATTR_FLOW],
        mood=data[ATTR_MOOD],
        symptoms=data.get(ATTR_SYMPTOMS, []),
        notes=data.get(ATTR_NOTES),
        cramp_intensity=data.get(ATTR_CRAMP_INTENSITY),
        energy_level=data.get(ATTR_ENERGY_LEVEL),
        cravings=data.get(ATTR_CRAVINGS, []),
        hunger_level=data.get(ATTR_HUNGER_LEVEL),
        sleep_quality=data.get(ATTR_SLEEP_QUALITY),
        stress_level=data.get(ATTR_STRESS_LEVEL),
        emotional_state=data.get(ATTR_EMOTIONAL_STATE, []),
    )


class EntryRuntime:
    """Runtime state per config entry."""

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        self.hass = hass
        self.entry = entry
        name = entry.data.get(CONF_NAME, entry.title or "Cycle Tracker")
        self.primary_user = entry.data.get(CONF_USER_ID) or slugify(name)
        self.advice_delay = float(entry.options.get(CONF_ADVICE_DELAY, DEFAULT_ADVICE_DELAY))
        self.notify_services: list[str] = list(entry.options.get(CONF_NOTIFY_SERVICES, []))
        self.daily_recompute_time = entry.options.get(
            CONF_DAILY_RECOMPUTE_TIME, DEFAULT_DAILY_RECOMPUTE_TIME
        )
        self.store = PredictionStore(
            hass,
            entry.entry_id,
            name,
            entry_window=int(entry.options.get(CONF_ENTRY_WINDOW, DEFAULT_ENTRY_WINDOW)),
            alert_policy=entry.options.get(CONF_ALERT_POLICY, DEFAULT_ALERT_POLICY),
        )
        self._timer_unsub: Optional[Callable[[], None]] = None
        self._pending_advice: dict[str, Callable[[], None]] = {}

    @property
    def name(self) -> str:
        return self.store.data.name

    async def async_load(self) -> None:
        await self.store.async_load()

    async def async_setup_timers(self) -> None:
        if self._timer_unsub:
            self._timer_unsub()
            self._timer_unsub = None

        target_time = parse_time(self.daily_recompute_time) or parse_time(
            DEFAULT_DAILY_RECOMPUTE_TIME
        )

        @callback
        def _daily_recompute(now: dt.datetime) -> None:
            self.hass.async_create_task(self.async_recompute_all())

        self._timer_unsub = hass_event.async_track_time_change(
            self.hass,
            _daily_recompute,
            hour=target_time.hour,
            minute=target_time.minute,
            second=target_time.second,
        )

    async def async_unload(self) -> None:
        if self._timer_unsub:
            self._timer_unsub()
            self._timer_unsub = None
        for unsub in self._pending_advice.values():
            unsub()
        self._pending_advice.clear()

    # ---- Recompute pipeline ----
    async def async_log_entry(self, entry: CycleEntry) -> RecomputeResult:
        await self.store.async_log_entry(entry)
        return await self.async_recompute(entry.user_id)

    async def async_recompute(self, user_id: str) -> RecomputeResult:
        result = await self.store.async_recompute(user_id, today_local(self.hass).date())
        if result.ok:
            self.schedule_advice(user_id)
        if result.alert is not None:
            await self._send_notifications(
                title=f"{self.name}: Period late", message=result.alert.message
            )
        return result

    async def async_recompute_all(self) -> None:
        for user_id in self.store.user_ids():
            try:
                await self.async_recompute(user_id)
            except HomeAssistantError as err:
                _LOGGER.error("Daily recompute for %s failed: %s", user_id, err)

    @callback
    def schedule_advice(self, user_id: str, attempt: int = 1, delay: float | None = None) -> None:
        """Dispatch the advice job; a newer trigger replaces a pending one."""
        pending = self._pending_advice.pop(user_id, None)
        if pending:
            pending()
        delay = self.advice_delay if delay is None else delay
        if delay <= 0:
            self.hass.async_create_task(self._async_run_advice(user_id, attempt))
            return

        @callback
        def _fire(_now: dt.datetime) -> None:
            self._pending_advice.pop(user_id, None)
            self.hass.async_create_task(self._async_run_advice(user_id, attempt))

        self._pending_advice[user_id] = hass_event.async_call_later(self.hass, delay, _fire)

    async def _async_run_advice(self, user_id: str, attempt: int) -> None:
        try:
            await self.store.async_recompute_advice(user_id)
        except PersistenceError as err:
            if attempt >= ADVICE_MAX_ATTEMPTS:
                _LOGGER.error(
                    "Giving up on advice for %s after %s attempts: %s", user_id, attempt, err
                )
                self.hass.bus.async_fire(
                    EVENT_ADVICE_FAILED,
                    {ATTR_ENTRY_ID: self.entry.entry_id, ATTR_USER_ID: user_id, "error": str(err)},
                )
                return
            backoff = ADVICE_RETRY_BASE_SECONDS * 2 ** (attempt - 1)
            _LOGGER.warning(
                "Advice for %s failed (attempt %s), retrying in %ss: %s",
                user_id, attempt, backoff, err,
            )
            self.schedule_advice(user_id, attempt + 1, delay=backoff)

    async def _send_notifications(self, title: str, message: str) -> None:
        for svc in self.notify_services:
            try:
                domain, service = svc.split(".")
            except ValueError:
                domain, service = "notify", svc
            try:
                await self.hass.services.async_call(
                    domain,
                    service,
                    {"title": title, "message": message},
                    blocking=True,
                )
            except HomeAssistantError as err:
                _LOGGER.warning("Notification via %s failed: %s", svc, err)

    def insights(self, user_id: str) -> Dict[str, Any]:
        predictions = self.store.fetch_predictions(user_id)
        advice = self.store.fetch_latest_advice(user_id)
        return {
            "user_id": user_id,
            "days_until_next_period": days_until_next_period(
                predictions, today_local(self.hass).date()
            ),
            "predictions": [
                {**p.as_dict(), "confidence_label": confidence_label(p.confidence)}
                for p in predictions
            ],
            "alerts": [a.as_dict() for a in self.store.fetch_unresolved_alerts(user_id)],
            "advice": advice.as_dict() if advice else None,
        }


async def async_setup(hass: HomeAssistant, config: dict) -> bool:
    """Set up the WS API and domain services."""

    # ---------- WebSocket API ----------
    websocket_api.async_register_command(hass, ws_discover_entry)
    websocket_api.async_register_command(hass, ws_list_entries)
    websocket_api.async_register_command(hass, ws_log_entry)
    websocket_api.async_register_command(hass, ws_get_insights)
    websocket_api.async_register_command(hass, ws_resolve_alert)
    websocket_api.async_register_command(hass, ws_export_data)

    # ---------- Domain services ----------
    async def _get_runtime_for_service(call: ServiceCall) -> EntryRuntime | None:
        entry_id = call.data.get(ATTR_ENTRY_ID)
        runtime = None
        if entry_id and entry_id in hass.data.get(DOMAIN, {}):
            runtime = hass.data[DOMAIN][entry_id]
        else:
            entries = hass.data.get(DOMAIN, {})
            if len(entries) == 1:
                runtime = list(entries.values())[0]
        if runtime is None:
            _LOGGER.warning(
                "cycle_insights service called but entry not found. entry_id=%s",
                entry_id,
            )
        return runtime

    async def _svc_log_entry(call: ServiceCall) -> None:
        runtime = await _get_runtime_for_service(call)
        if not runtime:
            return
        user_id = call.data.get(ATTR_USER_ID) or runtime.primary_user
        await runtime.async_log_entry(entry_from_data(user_id, call.data))

    async def _svc_recompute(call: ServiceCall) -> None:
        runtime = await _get_runtime_for_service(call)
        if not runtime:
            return
        await runtime.async_recompute(call.data.get(ATTR_USER_ID) or runtime.primary_user)

    async def _svc_resolve_alert(call: ServiceCall) -> None:
        runtime = await _get_runtime_for_service(call)
        if not runtime:
            return
        user_id = call.data.get(ATTR_USER_ID) or runtime.primary_user
        if not await runtime.store.async_resolve_alert(user_id, call.data[ATTR_ALERT_ID]):
            _LOGGER.warning("alert_id %s not open for %s", call.data[ATTR_ALERT_ID], user_id)

    hass.services.async_register(DOMAIN, "log_entry", _svc_log_entry, schema=LOG_ENTRY_SCHEMA)
    hass.services.async_register(DOMAIN, "recompute", _svc_recompute, schema=RECOMPUTE_SCHEMA)
    hass.services.async_register(
        DOMAIN, "resolve_alert", _svc_resolve_alert, schema=RESOLVE_ALERT_SCHEMA
    )

    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    runtime = EntryRuntime(hass, entry)
    await runtime.async_load()
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = runtime

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    await runtime.async_setup_timers()

    entry.async_on_unload(entry.add_update_listener(_async_options_updated))

    @callback
    def _on_stop(event):
        hass.async_create_task(runtime.async_unload())

    hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _on_stop)
    return True


async def _async_options_updated(hass: HomeAssistant, entry: ConfigEntry) -> None:
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        runtime: EntryRuntime = hass.data[DOMAIN].pop(entry.entry_id)
        await runtime.async_unload()
    return unload_ok


def _get_runtime(hass: HomeAssistant, entry_id: str) -> EntryRuntime:
    return hass.data[DOMAIN][entry_id]


# ==================== WebSocket API ====================

@websocket_api.websocket_command(
    {vol.Required("type"): "cycle_insights/discover_entry"}
)
@websocket_api.async_response
async def ws_discover_entry(hass: HomeAssistant, connection, msg: Dict[str, Any]):
    """Return the first (or only) entry we have; not admin-only."""
    entries: dict[str, EntryRuntime] = hass.data.get(DOMAIN, {})
    if not entries:
        connection.send_result(msg["id"], {"found": False})
        return
    entry_id, runtime = next(iter(entries.items()))
    connection.send_result(
        msg["id"],
        {
            "found": True,
            "entry_id": entry_id,
            "name": runtime.name,
            "user_id": runtime.primary_user,
        },
    )


@websocket_api.websocket_command(
    {
        vol.Required("type"): "cycle_insights/list_entries",
        vol.Required("entry_id"): str,
        vol.Optional("user_id"): str,
        vol.Optional("limit"): vol.All(int, vol.Range(min=1)),
    }
)
@websocket_api.async_response
async def ws_list_entries(hass, connection, msg):
    runtime = _get_runtime(hass, msg["entry_id"])
    user_id = msg.get("user_id") or runtime.primary_user
    entries = runtime.store.fetch_recent_entries(user_id, msg.get("limit"))
    connection.send_result(msg["id"], {"entries": [e.as_dict() for e in entries]})


@websocket_api.websocket_command(
    {
        vol.Required("type"): "cycle_insights/log_entry",
        vol.Required("entry_id"): str,
        vol.Optional("user_id"): str,
        **ENTRY_FIELDS,
    }
)
@websocket_api.async_response
async def ws_log_entry(hass, connection, msg):
    runtime = _get_runtime(hass, msg["entry_id"])
    user_id = msg.get("user_id") or runtime.primary_user
    try:
        result = await runtime.async_log_entry(entry_from_data(user_id, msg))
    except PersistenceError as err:
        connection.send_error(msg["id"], "persistence_failed", str(err))
        return
    connection.send_result(
        msg["id"],
        {
            "status": result.status,
            "predictions": [p.as_dict() for p in result.predictions],
            "alert": result.alert.as_dict() if result.alert else None,
        },
    )


@websocket_api.websocket_command(
    {
        vol.Required("type"): "cycle_insights/get_insights",
        vol.Required("entry_id"): str,
        vol.Optional("user_id"): str,
    }
)
@websocket_api.async_response
async def ws_get_insights(hass, connection, msg):
    runtime = _get_runtime(hass, msg["entry_id"])
    connection.send_result(msg["id"], runtime.insights(msg.get("user_id") or runtime.primary_user))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "cycle_insights/resolve_alert",
        vol.Required("entry_id"): str,
        vol.Optional("user_id"): str,
        vol.Required("alert_id"): str,
    }
)
@websocket_api.async_response
async def ws_resolve_alert(hass, connection, msg):
    runtime = _get_runtime(hass, msg["entry_id"])
    user_id = msg.get("user_id") or runtime.primary_user
    ok = await runtime.store.async_resolve_alert(user_id, msg["alert_id"])
    connection.send_result(msg["id"], {"ok": ok})


@websocket_api.websocket_command(
    {vol.Required("type"): "cycle_insights/export_data", vol.Required("entry_id"): str}
)
@websocket_api.async_response
async def ws_export_data(hass, connection, msg):
    runtime = _get_runtime(hass, msg["entry_id"])
    connection.send_result(msg["id"], runtime.store.data.as_dict())
