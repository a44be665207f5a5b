"""Detection of the monthly operating-system update window.

Hosts install updates in the days after the second Tuesday of each month.
Contacting the task server during those windows risks leaving tasks leased
by a machine that is about to reboot, so the agent stays idle instead.
"""

from datetime import datetime, timedelta

TUESDAY = 1


def second_tuesday(now: datetime) -> datetime:
    first = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    first += timedelta(days=(TUESDAY - first.weekday()) % 7)
    return first + timedelta(days=7)


def _clock(value: datetime) -> str:
    return value.strftime("%I:%M:%S %p")


def updates_are_pending(now: datetime) -> tuple[bool, str]:
    """Check whether updates are expected close to ``now``.

    Returns:
        (pending, message) where message describes the pending or recent update.
    """
    tuesday = second_tuesday(now)

    # Workstations: around 3 am on the Thursday after the second Tuesday
    thursday = tuesday + timedelta(days=2)
    if thursday <= now < thursday + timedelta(hours=6):
        expected = thursday + timedelta(hours=3)
        if now < expected:
            return True, f"Processing boxes are expected to install updates around {_clock(expected)}"
        return True, f"Processing boxes should have installed updates at {_clock(expected)}"

    # Servers: around 3 am or 10 am on the following Sunday
    sunday = tuesday + timedelta(days=5)
    windows = (
        (sunday + timedelta(hours=2), sunday + timedelta(hours=4)),
        (sunday + timedelta(hours=9), sunday + timedelta(hours=11)),
    )
    if any(start <= now < end for start, end in windows):
        first_expected = sunday + timedelta(hours=3)
        second_expected = sunday + timedelta(hours=10)
        times = f"{_clock(first_expected)} or {_clock(second_expected)}"
        if now < second_expected:
            return True, f"Servers are expected to install updates around {times}"
        return True, f"Servers should have installed updates around {times}"

    return False, "No pending update"
