from __future__ import annotations

import datetime as dt
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .const import (
    ALERT_LATE,
    ALERT_KINDS,
    CONFIDENCE_HIGH,
    CONFIDENCE_MEDIUM,
)

_LOGGER = logging.getLogger(__name__)

# ---------------- Utilities ----------------

def _get_local_tz(hass: HomeAssistant) -> dt.tzinfo:
    """Return Home Assistant's configured tzinfo."""
    return dt_util.get_time_zone(hass.config.time_zone)

def today_local(hass: HomeAssistant) -> dt.datetime:
    """Return timezone-aware 'now' in Home Assistant's configured timezone."""
    tz = _get_local_tz(hass)
    return dt_util.now(tz)

def parse_time(s: str | None) -> dt.time | None:
    if not s:
        return None
    try:
        h, m, sec = s.split(":")
        return dt.time(int(h), int(m), int(sec))
    except ValueError:
        return None

def coerce_date(s: str | dt.date | dt.datetime) -> dt.date:
    if isinstance(s, dt.datetime):
        return s.date()
    if isinstance(s, dt.date):
        return s
    return dt.date.fromisoformat(str(s))

def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3, unlike round())."""
    return int(math.floor(value + 0.5))

def dedupe_tags(tags) -> list[str]:
    """Drop repeated tags, keeping the first occurrence's position."""
    return list(dict.fromkeys(str(t) for t in tags or []))

def confidence_label(confidence: int) -> str:
    if confidence >= CONFIDENCE_HIGH:
        return "High"
    if confidence >= CONFIDENCE_MEDIUM:
        return "Medium"
    return "Low"

def days_until_next_period(predictions: list["PredictedCycle"], today: dt.date) -> int | None:
    """Whole days until the nearest predicted start; 0 once it has passed."""
    if not predictions:
        return None
    diff = (predictions[0].start - today).days
    return diff if diff > 0 else 0


_QUOTES = [
    "You are stronger than you think and more capable than you imagine",
    "Your body is doing something incredible - honor it",
    "Every cycle is a reminder of your body's amazing power",
    "Listen to your body, it's speaking to you",
    "You are not broken, you are cyclical",
    "Your period is not a weakness, it's a superpower",
    "Rest when you need to, you're not lazy - you're wise",
    "Your body knows what it's doing, trust the process",
    "You are exactly where you need to be in your cycle",
    "Embrace your rhythm, it's uniquely yours",
]

def daily_quote(day: dt.date) -> str:
    return _QUOTES[day.timetuple().tm_yday % len(_QUOTES)]

# ---------------- Data Models ----------------

@dataclass
class CycleEntry:
    user_id: str
    date: dt.date
    flow: str
    mood: str
    symptoms: list[str] = field(default_factory=list)
    notes: str | None = None
    cramp_intensity: int | None = None  # 0-5
    energy_level: str | None = None
    cravings: list[str] = field(default_factory=list)
    hunger_level: int | None = None  # 1-5
    sleep_quality: int | None = None  # 1-5
    stress_level: str | None = None
    emotional_state: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.symptoms = dedupe_tags(self.symptoms)
        self.cravings = dedupe_tags(self.cravings)
        self.emotional_state = dedupe_tags(self.emotional_state)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "flow": self.flow,
            "mood": self.mood,
            "symptoms": list(self.symptoms),
            "notes": self.notes,
            "cramp_intensity": self.cramp_intensity,
            "energy_level": self.energy_level,
            "cravings": list(self.cravings),
            "hunger_level": self.hunger_level,
            "sleep_quality": self.sleep_quality,
            "stress_level": self.stress_level,
            "emotional_state": list(self.emotional_state),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CycleEntry":
        return CycleEntry(
            user_id=d["user_id"],
            date=coerce_date(d["date"]),
            flow=d["flow"],
            mood=d["mood"],
            symptoms=list(d.get("symptoms", [])),
            notes=d.get("notes"),
            cramp_intensity=d.get("cramp_intensity"),
            energy_level=d.get("energy_level"),
            cravings=list(d.get("cravings", [])),
            hunger_level=d.get("hunger_level"),
            sleep_quality=d.get("sleep_quality"),
            stress_level=d.get("stress_level"),
            emotional_state=list(d.get("emotional_state", [])),
        )


@dataclass
class PredictedCycle:
    user_id: str
    index: int
    start: dt.date
    end: dt.date
    confidence: int
    generated_at: dt.datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "index": self.index,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "confidence": self.confidence,
            "generated_at": self.generated_at.isoformat(),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "PredictedCycle":
        return PredictedCycle(
            user_id=d["user_id"],
            index=int(d["index"]),
            start=coerce_date(d["start"]),
            end=coerce_date(d["end"]),
            confidence=int(d["confidence"]),
            generated_at=dt.datetime.fromisoformat(d["generated_at"]),
        )


@dataclass
class Alert:
    user_id: str
    kind: str
    message: str
    created_at: dt.datetime
    resolved: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.kind not in ALERT_KINDS:
            raise ValueError(f"Unknown alert kind: {self.kind}")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "kind": self.kind,
            "message": self.message,
            "resolved": self.resolved,
            "created_at": self.created_at.isoformat(),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Alert":
        return Alert(
            id=d["id"],
            user_id=d["user_id"],
            kind=d.get("kind", ALERT_LATE),
            message=d["message"],
            resolved=bool(d.get("resolved", False)),
            created_at=dt.datetime.fromisoformat(d["created_at"]),
        )


@dataclass
class Advice:
    user_id: str
    text: str
    generated_at: dt.datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "text": self.text,
            "generated_at": self.generated_at.isoformat(),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Advice":
        return Advice(
            user_id=d["user_id"],
            text=d["text"],
            generated_at=dt.datetime.fromisoformat(d["generated_at"]),
        )


def _load_alerts(rows: list[Dict[str, Any]]) -> list[Alert]:
    """Rebuild stored alerts, dropping rows with an unknown kind."""
    alerts = []
    for row in rows:
        try:
            alerts.append(Alert.from_dict(row))
        except ValueError as err:
            _LOGGER.warning("Dropping stored alert %s: %s", row.get("id"), err)
    return alerts


@dataclass
class UserCycleData:
    """Everything stored for one user; never shared across users."""

    entries: list[CycleEntry] = field(default_factory=list)
    predictions: list[PredictedCycle] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
    advice: list[Advice] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.as_dict() for e in self.entries],
            "predictions": [p.as_dict() for p in self.predictions],
            "alerts": [a.as_dict() for a in self.alerts],
            "advice": [a.as_dict() for a in self.advice],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "UserCycleData":
        return UserCycleData(
            entries=[CycleEntry.from_dict(x) for x in d.get("entries", [])],
            predictions=[PredictedCycle.from_dict(x) for x in d.get("predictions", [])],
            alerts=_load_alerts(d.get("alerts", [])),
            advice=[Advice.from_dict(x) for x in d.get("advice", [])],
        )


@dataclass
class CycleData:
    name: str
    users: dict[str, UserCycleData] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "users": {uid: u.as_dict() for uid, u in self.users.items()},
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CycleData":
        return CycleData(
            name=d["name"],
            users={
                uid: UserCycleData.from_dict(u)
                for uid, u in d.get("users", {}).items()
            },
        )

    def user(self, user_id: str) -> UserCycleData:
        return self.users.setdefault(user_id, UserCycleData())

    # ---- Mutators used by WS/services ----
    def upsert_entry(self, entry: CycleEntry) -> bool:
        """Insert or overwrite the entry for its date. Returns True if overwritten."""
        user = self.user(entry.user_id)
        for i, existing in enumerate(user.entries):
            if existing.date == entry.date:
                user.entries[i] = entry
                return True
        user.entries.append(entry)
        user.entries.sort(key=lambda e: e.date)
        return False

    def recent_entries(self, user_id: str, limit: int) -> list[CycleEntry]:
        """Newest-first, at most ``limit`` entries."""
        user = self.users.get(user_id)
        if user is None:
            return []
        return sorted(user.entries, key=lambda e: e.date, reverse=True)[:limit]
