# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Test doubles shared by unit and integration tests.

Time never advances on its own in tests: components take a FakeClock as
their clock and FakeClock.sleep as their sleep, so waits for cooldowns,
windows and backoffs complete instantly.
"""

from datetime import date, datetime, timedelta, timezone

from src.domains.attendance import AttendanceRecord, AttendanceStatus

# Wednesday afternoon, inside the sending window
NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
MONDAY = TODAY - timedelta(days=TODAY.weekday())


class FakeClock:
    """Manually advanced clock with a matching async sleep."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class FakeTransport:
    """Message transport that records every send.

    Outcomes can be scripted per phone; each send pops the next one.
    An outcome is True, False or an exception to raise. Unscripted
    sends succeed.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._outcomes: dict[str, list[bool | Exception]] = {}

    def script(self, phone: str, *outcomes: bool | Exception) -> None:
        self._outcomes[phone] = list(outcomes)

    async def send(self, phone: str, text: str) -> bool:
        self.sent.append((phone, text))
        queue = self._outcomes.get(phone)
        outcome = queue.pop(0) if queue else True
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def absence(student_id: str, day: date, justified: bool = False) -> AttendanceRecord:
    """Build an absence record."""
    return AttendanceRecord(
        date=day,
        class_id="violin-1",
        student_id=student_id,
        status=AttendanceStatus.JUSTIFIED if justified else AttendanceStatus.ABSENT,
        justified=justified,
    )
