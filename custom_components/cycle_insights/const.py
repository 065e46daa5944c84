from __future__ import annotations

DOMAIN = "cycle_insights"

PLATFORMS = ["sensor", "binary_sensor"]

STORAGE_VERSION = 1
STORAGE_KEY_PREFIX = "cycle_insights_"

CONF_NAME = "name"
CONF_USER_ID = "user_id"
CONF_ENTRY_WINDOW = "entry_window"
CONF_ADVICE_DELAY = "advice_delay"
CONF_ALERT_POLICY = "alert_policy"
CONF_NOTIFY_SERVICES = "notify_services"
CONF_DAILY_RECOMPUTE_TIME = "daily_recompute_time"

DEFAULT_NAME = "Cycle Tracker"
DEFAULT_ENTRY_WINDOW = 90
DEFAULT_ADVICE_DELAY = 0
DEFAULT_DAILY_RECOMPUTE_TIME = "09:00:00"  # local time

ALERT_POLICY_APPEND = "append"
ALERT_POLICY_SINGLE_OPEN = "single_open"
DEFAULT_ALERT_POLICY = ALERT_POLICY_APPEND

# Forecasting
FORECAST_COUNT = 5
NEAR_TERM_COUNT = 3  # indexes 1..3 are the accurate tier
PERIOD_LENGTH_DAYS = 5
NEAR_TERM_BASE = 95
NEAR_TERM_STEP = 5
NEAR_TERM_VARIABILITY_WEIGHT = 2
NEAR_TERM_FLOOR = 70
SMALL_SAMPLE_SIZE = 5
SMALL_SAMPLE_PENALTY = 15
LONG_RANGE_BASE = 65
LONG_RANGE_STEP = 8
LONG_RANGE_VARIABILITY_WEIGHT = 3
LONG_RANGE_FLOOR = 40
LATE_GRACE_DAYS = 3

CONFIDENCE_HIGH = 80
CONFIDENCE_MEDIUM = 60

# Advice
TOP_SYMPTOM_COUNT = 3
SAD_MOOD_THRESHOLD = 0.4
HEAVY_FLOW_THRESHOLD = 0.6

# Deferred advice job
ADVICE_RETRY_BASE_SECONDS = 5
ADVICE_MAX_ATTEMPTS = 3
EVENT_ADVICE_FAILED = f"{DOMAIN}_advice_failed"

UNRESOLVED_ALERT_LIMIT = 5

ALERT_LATE = "late"
ALERT_PREDICTION = "prediction"
ALERT_REMINDER = "reminder"
ALERT_KINDS = [ALERT_LATE, ALERT_PREDICTION, ALERT_REMINDER]

FLOW_LEVELS = ["light", "medium", "heavy"]
MOODS = ["happy", "neutral", "sad"]
LEVELS = ["low", "medium", "high"]

ATTR_ENTRY_ID = "entry_id"
ATTR_USER_ID = "user_id"
ATTR_DATE = "date"
ATTR_FLOW = "flow"
ATTR_MOOD = "mood"
ATTR_SYMPTOMS = "symptoms"
ATTR_NOTES = "notes"
ATTR_CRAMP_INTENSITY = "cramp_intensity"
ATTR_ENERGY_LEVEL = "energy_level"
ATTR_CRAVINGS = "cravings"
ATTR_HUNGER_LEVEL = "hunger_level"
ATTR_SLEEP_QUALITY = "sleep_quality"
ATTR_STRESS_LEVEL = "stress_level"
ATTR_EMOTIONAL_STATE = "emotional_state"
ATTR_ALERT_ID = "alert_id"
ATTR_DAYS_UNTIL = "days_until"
ATTR_CONFIDENCE = "confidence"
ATTR_CONFIDENCE_LABEL = "confidence_label"
ATTR_PREDICTIONS = "predictions"
ATTR_ADVICE = "advice"
ATTR_GENERATED_AT = "generated_at"
ATTR_DAILY_QUOTE = "daily_quote"
ATTR_MESSAGE = "message"

COLLECTION_PREDICTIONS = "predictions"
COLLECTION_ADVICE = "advice"
