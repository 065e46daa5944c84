"""Persistence and recompute orchestration for one tracker config entry."""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.storage import Store
from homeassistant.util import dt as dt_util

from .advice import build_advice
from .const import (
    ALERT_POLICY_APPEND,
    ALERT_POLICY_SINGLE_OPEN,
    COLLECTION_ADVICE,
    COLLECTION_PREDICTIONS,
    DEFAULT_ENTRY_WINDOW,
    STORAGE_KEY_PREFIX,
    STORAGE_VERSION,
    UNRESOLVED_ALERT_LIMIT,
)
from .forecast import (
    CycleStats,
    InvalidIntervalError,
    analyze_intervals,
    detect_lateness,
    forecast_cycles,
    late_alert,
)
from .helpers import Advice, Alert, CycleData, CycleEntry, PredictedCycle

_LOGGER = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_INSUFFICIENT_DATA = "insufficient_data"
STATUS_INVALID_INTERVAL = "invalid_interval"


class PersistenceError(HomeAssistantError):
    """Writing tracker data to storage failed."""


# ---------------- Alert policies ----------------

class AppendAlertPolicy:
    """Every recompute that detects lateness adds a new alert."""

    def accept(self, existing: list[Alert], candidate: Alert) -> bool:
        return True


class SingleOpenAlertPolicy:
    """Only add an alert when no unresolved alert of the same kind is open."""

    def accept(self, existing: list[Alert], candidate: Alert) -> bool:
        return not any(
            a.kind == candidate.kind and not a.resolved for a in existing
        )


ALERT_POLICIES = {
    ALERT_POLICY_APPEND: AppendAlertPolicy,
    ALERT_POLICY_SINGLE_OPEN: SingleOpenAlertPolicy,
}


@dataclass
class RecomputeResult:
    status: str
    stats: CycleStats | None = None
    predictions: list[PredictedCycle] = field(default_factory=list)
    alert: Alert | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class PredictionStore:
    """Single writer of predictions, alerts and advice for a tracker."""

    def __init__(
        self,
        hass: HomeAssistant,
        entry_id: str,
        name: str,
        entry_window: int = DEFAULT_ENTRY_WINDOW,
        alert_policy: str = ALERT_POLICY_APPEND,
    ) -> None:
        self.hass = hass
        self.entry_id = entry_id
        self.entry_window = entry_window
        self.alert_policy = ALERT_POLICIES.get(alert_policy, AppendAlertPolicy)()
        self._store = Store(hass, STORAGE_VERSION, f"{STORAGE_KEY_PREFIX}{entry_id}")
        self.data = CycleData(name=name)

    async def async_load(self) -> None:
        saved = await self._store.async_load()
        if saved:
            self.data = CycleData.from_dict(saved)
            _LOGGER.debug("Loaded cycle data for %s", self.entry_id)

    async def async_save(self) -> None:
        """Write the whole document; write errors surface as PersistenceError.

        Goes through the store's writer; Store.async_save only logs failures.
        """
        payload = {
            "version": self._store.version,
            "minor_version": self._store.minor_version,
            "key": self._store.key,
            "data": self.data.as_dict(),
        }
        try:
            await self._store._async_write_data(self._store.path, payload)
        except (OSError, HomeAssistantError) as err:
            raise PersistenceError(f"Failed to save cycle data: {err}") from err
        _LOGGER.debug("Saved cycle data for %s", self.entry_id)

    # ---- Reads ----
    def fetch_recent_entries(self, user_id: str, limit: int | None = None) -> list[CycleEntry]:
        return self.data.recent_entries(user_id, limit or self.entry_window)

    def fetch_predictions(self, user_id: str) -> list[PredictedCycle]:
        user = self.data.users.get(user_id)
        if user is None:
            return []
        return sorted(user.predictions, key=lambda p: p.index)

    def fetch_unresolved_alerts(self, user_id: str) -> list[Alert]:
        user = self.data.users.get(user_id)
        if user is None:
            return []
        open_alerts = [a for a in user.alerts if not a.resolved]
        open_alerts.sort(key=lambda a: a.created_at, reverse=True)
        return open_alerts[:UNRESOLVED_ALERT_LIMIT]

    def fetch_latest_advice(self, user_id: str) -> Advice | None:
        user = self.data.users.get(user_id)
        if user is None or not user.advice:
            return None
        return max(user.advice, key=lambda a: a.generated_at)

    def user_ids(self) -> list[str]:
        return [uid for uid, u in self.data.users.items() if u.entries]

    # ---- Writes ----
    async def async_log_entry(self, entry: CycleEntry) -> None:
        user = self.data.user(entry.user_id)
        previous = list(user.entries)
        overwritten = self.data.upsert_entry(entry)
        try:
            await self.async_save()
        except PersistenceError:
            user.entries = previous
            raise
        _LOGGER.debug(
            "%s entry %s for %s",
            "Overwrote" if overwritten else "Logged",
            entry.date.isoformat(),
            entry.user_id,
        )

    async def async_replace_set(self, user_id: str, collection: str, rows: list) -> None:
        """Swap a user's whole collection for ``rows`` in one step and persist it.

        Readers see either the old rows or the new ones. If saving fails the
        old rows are restored before PersistenceError propagates.
        """
        user = self.data.user(user_id)
        previous = getattr(user, collection)
        installed = list(rows)
        setattr(user, collection, installed)
        try:
            await self.async_save()
        except PersistenceError:
            # a newer set committed while this save was pending wins
            if getattr(user, collection) is installed:
                setattr(user, collection, previous)
            raise

    async def async_add_alert(self, alert: Alert) -> bool:
        user = self.data.user(alert.user_id)
        if not self.alert_policy.accept(user.alerts, alert):
            _LOGGER.debug("Alert policy kept existing %s alert for %s", alert.kind, alert.user_id)
            return False
        user.alerts.append(alert)
        try:
            await self.async_save()
        except PersistenceError:
            if alert in user.alerts:
                user.alerts.remove(alert)
            raise
        return True

    async def async_resolve_alert(self, user_id: str, alert_id: str) -> bool:
        user = self.data.users.get(user_id)
        if user is None:
            return False
        for a in user.alerts:
            if a.id == alert_id and not a.resolved:
                a.resolved = True
                try:
                    await self.async_save()
                except PersistenceError:
                    a.resolved = False
                    raise
                return True
        return False

    # ---- Recompute ----
    async def async_recompute(
        self, user_id: str, today: dt.date, now: dt.datetime | None = None
    ) -> RecomputeResult:
        """Regenerate predictions and check lateness for one user."""
        now = now or dt_util.utcnow()
        entries = self.fetch_recent_entries(user_id)
        try:
            stats = analyze_intervals(entries)
        except InvalidIntervalError as err:
            _LOGGER.warning("Skipping recompute for %s: %s", user_id, err)
            return RecomputeResult(status=STATUS_INVALID_INTERVAL)
        if stats is None:
            _LOGGER.debug("Not enough entries to forecast for %s", user_id)
            return RecomputeResult(status=STATUS_INSUFFICIENT_DATA)

        predictions = forecast_cycles(user_id, stats, now)
        await self.async_replace_set(user_id, COLLECTION_PREDICTIONS, predictions)

        result = RecomputeResult(status=STATUS_OK, stats=stats, predictions=predictions)
        days_late = detect_lateness(stats.anchor_date, stats.mean_interval, today)
        if days_late is not None:
            alert = late_alert(user_id, days_late, now)
            if await self.async_add_alert(alert):
                _LOGGER.info("%s is %s days late", user_id, days_late)
                result.alert = alert

        _LOGGER.debug(
            "Recomputed %s: mean %.1f, variability %.2f, %d entries",
            user_id,
            stats.mean_interval,
            stats.variability,
            stats.sample_size,
        )
        return result

    async def async_recompute_advice(
        self, user_id: str, now: dt.datetime | None = None
    ) -> Advice | None:
        """Replace the user's advice; no-op with fewer than two entries."""
        text = build_advice(self.fetch_recent_entries(user_id))
        if text is None:
            return None
        advice = Advice(user_id=user_id, text=text, generated_at=now or dt_util.utcnow())
        await self.async_replace_set(user_id, COLLECTION_ADVICE, [advice])
        return advice
