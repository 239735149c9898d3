DOMAIN = "proconip"
VERSION = "1.0.0"
MANUFACTURER = "Pool Digital"
MODEL = "ProCon.IP"


def signal_new_object(entry_id: str) -> str:
    """Dispatcher signal for store objects created under a config entry."""
    return f"{DOMAIN}_{entry_id}_new_object"


def signal_object(entry_id: str, path: str) -> str:
    return f"{DOMAIN}_{entry_id}_object_{path}"


def signal_state(entry_id: str, path: str) -> str:
    return f"{DOMAIN}_{entry_id}_state_{path}"


# Config entry keys
CONF_ENTRY_NAME = "entry_name"
CONF_CONTROLLER_URL = "controller_url"
CONF_BASIC_AUTH = "basic_auth"
CONF_USERNAME = "username"
CONF_PASSWORD = "password"
CONF_UPDATE_INTERVAL = "update_interval"
CONF_REQUEST_TIMEOUT = "request_timeout"
CONF_ERROR_TOLERANCE = "error_tolerance"

DEFAULT_ENTRY_NAME = "ProCon.IP"
DEFAULT_CONTROLLER_URL = "http://192.168.2.3"
DEFAULT_BASIC_AUTH = True
DEFAULT_USERNAME = "admin"
DEFAULT_PASSWORD = "admin"
DEFAULT_UPDATE_INTERVAL = 3000   # milliseconds
DEFAULT_REQUEST_TIMEOUT = 5000   # milliseconds
DEFAULT_ERROR_TOLERANCE = 3      # consecutive poll failures logged quietly
MIN_INTERVAL = 1000              # milliseconds, lower bound for interval and timeout

# Controller HTTP endpoints
GET_STATE_PATH = "/GetState.csv"
USRCFG_PATH = "/usrcfg.cgi"
COMMAND_PATH = "/Command.htm"
SET_STATE_PATH = "/SetState.csv"

# Relay addressing
EXTERNAL_RELAY_OFFSET = 8        # physical relay id = category_id + 8 for the external bank
TIMER_CHANNEL_OFFSET = 1         # timer channels are 1-based
RELAY_COUNT = 16

# Relay raw value bits
RELAY_BIT_ON = 0x1
RELAY_BIT_MANUAL = 0x2

# SYSINFO bitmasks
DOSAGE_BIT_CHLORINE = 0x1
DOSAGE_BIT_PH_MINUS = 0x100
DOSAGE_BIT_PH_PLUS = 0x1000
DOSAGE_BIT_ELECTROLYSIS = 0x10000
CONFIG_BIT_EXTERNAL_RELAYS = 0x2

# Manual dosage command targets (Command.htm MAN_DOSAGE)
DOSAGE_TARGET_CHLORINE = 0
DOSAGE_TARGET_PH_MINUS = 1
DOSAGE_TARGET_PH_PLUS = 2

# Store namespace
INFO_CHANNEL = "info"
INFO_CONNECTION = "info.connection"
INFO_SYSTEM = "info.system"
SYS_INFO_FLAGS: dict[str, str] = {
    "phPlusDosageEnabled": "pH+ enabled",
    "phMinusDosageEnabled": "pH- enabled",
    "chlorineDosageEnabled": "CL enabled",
    "electrolysis": "Electrolysis",
}

# Fields written into the store for every data object, in write order
TRACKED_FIELDS: tuple[str, ...] = ("value", "category", "label", "unit", "displayValue", "active")

# Relay sub-entries
FIELD_AUTO = "auto"
FIELD_ON_OFF = "onOff"
FIELD_TIMER = "timer"
FIELD_DOSAGE_TIMER = "dosageTimer"

# Store roles used for entity platform selection
ROLE_INTERVAL = "value.interval"
ROLE_TEMPERATURE = "value.temperature"

# Matched case-insensitively against relay labels
LIGHT_LABEL_PATTERN = r"light|bulb|licht|leucht"

# Labels the controller uses for unused channels
INACTIVE_LABELS = ("n.a.", "n.a", "")

# Timer entity bounds (seconds)
TIMER_MAX_SECONDS = 21600
