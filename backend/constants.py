"""Thresholds and ranges shared by the session and task code (all durations in seconds)."""

PLANNED_MINUTES_MIN = 5
PLANNED_MINUTES_MAX = 480

CYCLE_MINUTES_MIN = 5
CYCLE_MINUTES_MAX = 60
DEFAULT_CYCLE_MINUTES = 25

TOTAL_CYCLES_MIN = 1
TOTAL_CYCLES_MAX = 12
DEFAULT_TOTAL_CYCLES = 4

SHORT_BREAK_SECONDS = 300
LONG_BREAK_SECONDS = 900
WORK_CYCLES_PER_LONG_BREAK = 4

# Below this, a completed session is not reported back to its task.
MIN_REPORTED_SECONDS = 300
# Above this, a "todo" task moves to "in-progress" on completion.
PROMOTE_TASK_AFTER_SECONDS = 900

PAUSE_PENALTY_PERCENT = 3
SECONDS_LOST_PER_PAUSE = 60

# Flat efficiency scores when no planned duration is set.
FULL_POMODORO_SECONDS = 1500
EFFICIENCY_FULL_POMODORO = 80
EFFICIENCY_SHORT = 50

NOTES_MAX_LENGTH = 500
TASK_TITLE_MAX_LENGTH = 200
NOTE_TITLE_MAX_LENGTH = 200
NOTE_CONTENT_MAX_LENGTH = 10000
