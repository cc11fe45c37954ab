STATE_DIR_NAME = ".roadmap"
CONFIG_FILE = "config.yaml"
BOARD_FILE = "board.yaml"
BOARD_LOCK_FILE = "board.lock"
LOCAL_STATE_FILE = "local_state.json"
ARTIFACTS_DIR = "artifacts"
EVENTS_FILE = "board_events.jsonl"
WINDOWS_LOCK_BYTES = 4096

COLLAPSED_GROUPS_KEY = "roadmap-board.collapsed-groups"
RENUMBER_ENV_VAR = "ROADMAP_BOARD_RENUMBER_ON_MOVE"

DEFAULT_REMINDER_DAYS = 3
DEFAULT_TAG_COLOR = "#6366f1"

NO_TAG_GROUP_KEY = "no-tag"
