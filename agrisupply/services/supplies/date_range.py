"""
Received-date range picker for the supplies list.

Holds the applied range plus a draft range edited on a month grid; the list
filter only sees the applied values.
"""
from datetime import date, timedelta
from typing import List, Optional

EMPTY_LABEL = "Select date range"
GRID_DAYS = 42


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, amount: int) -> date:
    month_index = day.year * 12 + (day.month - 1) + amount
    return date(month_index // 12, month_index % 12 + 1, 1)


def month_grid(month: date) -> List[date]:
    """Six weeks of days starting on the Sunday on or before the 1st"""
    first = start_of_month(month)
    # date.weekday() is Monday=0; the grid starts on Sunday
    grid_start = first - timedelta(days=(first.weekday() + 1) % 7)
    return [grid_start + timedelta(days=offset) for offset in range(GRID_DAYS)]


def format_display_date(day: Optional[date]) -> str:
    return day.strftime("%d %b %Y") if day else ""


class DateRangePicker:
    def __init__(self, today: Optional[date] = None):
        self.today = today or date.today()
        self.received_from: Optional[date] = None
        self.received_to: Optional[date] = None
        self.draft_from: Optional[date] = None
        self.draft_to: Optional[date] = None
        self.displayed_month = start_of_month(self.today)
        self.is_open = False

    def open(self) -> None:
        """Copy the applied range into the draft and show its month"""
        self.draft_from = self.received_from
        self.draft_to = self.received_to
        self.displayed_month = start_of_month(self.received_from or self.received_to or self.today)
        self.is_open = True

    def grid(self) -> List[date]:
        return month_grid(self.displayed_month)

    @property
    def can_go_next_month(self) -> bool:
        return self.displayed_month < start_of_month(self.today)

    def prev_month(self) -> None:
        self.displayed_month = add_months(self.displayed_month, -1)

    def next_month(self) -> None:
        if self.can_go_next_month:
            self.displayed_month = add_months(self.displayed_month, 1)

    def select_day(self, day: date) -> None:
        if day > self.today:
            return

        if self.draft_from is None or self.draft_to is not None or day < self.draft_from:
            self.draft_from = day
            self.draft_to = None
            return

        self.draft_to = day

    def is_in_range(self, day: date) -> bool:
        if self.draft_from is None or self.draft_to is None:
            return False
        return self.draft_from <= day <= self.draft_to

    def apply(self) -> None:
        self.received_from = self.draft_from
        self.received_to = self.draft_to or self.draft_from
        self.is_open = False

    def clear(self) -> None:
        self.draft_from = self.draft_to = None
        self.received_from = self.received_to = None
        self.is_open = False

    @property
    def label(self) -> str:
        from_label = format_display_date(self.received_from)
        to_label = format_display_date(self.received_to)
        if from_label and to_label:
            return f"{from_label} – {to_label}"
        return from_label or to_label or EMPTY_LABEL
