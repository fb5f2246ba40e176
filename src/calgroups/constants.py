"""Shared constants for host detection, scanning and reveal passes."""

DEFAULT_HOSTS = ("calendar.google.com",)

TOGGLE_SELECTOR = 'input[type="checkbox"], [role="checkbox"]'

# Labeled sections that hold calendar entries (strategy a).
SECTION_SELECTORS = (
    '[data-drawer="my-calendars"]',
    '[aria-label*="マイカレンダー"]',
    '[aria-label*="My calendars"]',
    '[data-drawer="other-calendars"]',
    '[aria-label*="他のカレンダー"]',
    '[aria-label*="Other calendars"]',
    '[role="group"][aria-label*="calendar"]',
    '[role="group"][aria-label*="カレンダー"]',
)

# Broad navigation containers (strategy c).
SIDEBAR_SELECTORS = (
    "aside",
    '[role="navigation"]',
    '[role="complementary"]',
    ".gb_pc",
    '[data-testid*="sidebar"]',
    '[data-testid*="calendar"]',
    '[class*="sidebar"]',
    '[class*="nav"]',
)

# Attribute/class patterns of the host's item markup (strategy d).
MARKUP_PATTERNS = (
    '[class*="calendar"]',
    '[class*="Calendar"]',
    "[jsname]",
    "[data-eventid]",
    "[data-calendarid]",
    '[id*="calendar"]',
    '[id*="Calendar"]',
)

# Visible section headings (strategy e).
SECTION_LABEL_TEXTS = (
    "マイカレンダー",
    "My calendars",
    "my calendars",
    "他のカレンダー",
    "Other calendars",
    "other calendars",
    "カレンダー",
    "Calendar",
    "calendar",
)

# Closest-ancestor probes used to pick the container of a toggle, in order.
CONTAINER_ANCESTOR_SELECTORS = (
    "li",
    'div[role="listitem"]',
    "label",
    "[data-calendarid]",
    "[data-eventid]",
    "[jsname]",
    'div[class*="calendar"]',
    'div[class*="Calendar"]',
)
CONTAINER_MAX_TEXT = 200

# Native identifier attributes, highest priority first.
NATIVE_ID_ATTRIBUTES = (
    "data-calendarid",
    "data-eventid",
    "data-calendar-id",
    "data-id",
    "id",
    "data-testid",
)

SYSTEM_ITEM_DENYLIST = (
    "tasks",
    "reminders",
    "タスク",
    "リマインダー",
    "birthdays",
    "誕生日",
    "holidays",
    "祝日",
    "フォローアップ",
    "follow-up",
)

MAX_DESCRIPTIVE_TEXT = 150
MAX_NAME_LENGTH = 100
GENERATED_ID_PREFIX = "ent"
GENERATED_TEXT_CHARS = 10
POSITIONAL_NAME_PREFIX = "Entity"

# Reveal pass: the secondary section is collapsed before expanding the rest.
SECONDARY_SECTION_PATTERNS = (
    "other calendars",
    "他のカレンダー",
    "otros calendarios",
    "autres calendriers",
    "andere kalender",
    "altri calendari",
)
SECONDARY_SECTION_DRAWER = '[data-drawer="other-calendars"]'

EXPANDABLE_SELECTORS = (
    '[aria-expanded="false"]',
    'button[aria-label*="expand"]',
    'button[aria-label*="show"]',
    'button[aria-label*="展開"]',
    'button[aria-label*="表示"]',
    ".collapsed",
    '[data-collapsed="true"]',
    '[jsname][aria-expanded="false"]',
)

CALENDAR_AREA_SELECTORS = (
    "aside",
    '[role="navigation"]',
    '[role="complementary"]',
    '[data-drawer*="calendar"]',
    '[aria-label*="calendar"]',
    '[aria-label*="カレンダー"]',
)

SCROLL_CONTAINER_SELECTORS = (
    *CALENDAR_AREA_SELECTORS,
    '[role="list"]',
    '[role="listbox"]',
    ".calendar-list",
)

SWEEP_STEP_PX = 50
SWEEP_PAUSE_MS = 10
JUMP_PAUSE_MS = 100
WHEEL_EVENTS = 10
WHEEL_PAUSE_MS = 50
SMOOTH_SCROLL_PAUSE_MS = 300
EXPAND_PAUSE_MS = 200
COLLAPSE_PAUSE_MS = 800
FINAL_RENDER_PAUSE_MS = 1000
OBSERVE_INTERVAL_MS = 100
READY_POLL_MS = 500

# Ladder rung names, in escalation order after the primary activation.
LADDER_PRIMARY = "click"
LADDER_POINTER = "pointer_events"
LADDER_KEY = "key_activation"
LADDER_FORCE = "direct_mutation"
TOGGLE_LADDER = (LADDER_PRIMARY, LADDER_POINTER, LADDER_KEY, LADDER_FORCE)

LEGACY_ACTIONS = {
    "getCalendars": "getEntities",
    "forceRefreshCalendars": "forceRefreshEntities",
    "toggleGroup": "activateGroup",
    "showAllCalendars": "restoreAll",
}
