"""
Shared constants for the backend application.
"""

# ---------------------------------------------------------------------------
# Order statuses
# ---------------------------------------------------------------------------
# Statuses that count as sales in the end-of-day report
REPORTABLE_ORDER_STATUSES = ("completed", "modified")

# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------
# Buckets of the report payment breakdown, in output order
PAYMENT_BREAKDOWN_METHODS = ("cash", "card", "delivery")

DELIVERY_PLATFORMS = ("keeta", "hunger_station", "jahez")

# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
HOURS_PER_DAY = 24
UNKNOWN_ITEM_NAME = "Unknown Item"
DEFAULT_PEAK_HOUR = "12:00"
REPORT_TYPE_EOD = "eod"
SEQUENCE_DIGITS = 4
DAILY_SERIAL_DIGITS = 3

HISTORY_DEFAULT_LIMIT = 10
HISTORY_MAX_LIMIT = 100

DATE_PRESETS = ("today", "yesterday", "last-7-days")
