from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from config import Settings
from flipt_service import FliptService
from models import GuestDetails, StayRequest
from registry import build_registry


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set_date(self, day: date) -> None:
        self.now = datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc)


class StubEvaluation:
    """Stands in for the Flipt SDK evaluation API with fixed flag values."""

    def __init__(self, flags: dict[str, bool]):
        self.flags = flags
        self.requests = []

    def boolean(self, request):
        self.requests.append(request)
        return SimpleNamespace(enabled=self.flags.get(request.flag_key, False), reason="MATCH_EVALUATION_REASON")


@pytest.fixture
def settings() -> Settings:
    return Settings(flipt_enabled=False, otel_enabled=False)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def flag_values() -> dict[str, bool]:
    return {}


@pytest.fixture
def flags(settings, flag_values) -> FliptService:
    return FliptService(settings, client=SimpleNamespace(evaluation=StubEvaluation(flag_values)))


@pytest.fixture
def registry(settings, flags, clock):
    return build_registry(settings, flags=flags, clock=clock)


@pytest.fixture
def orchestrator(registry):
    return registry.orchestrator


@pytest.fixture
def guest() -> GuestDetails:
    return GuestDetails(name="Ada Lovelace", email="ada@example.com", phone="+44 20 7946 0000")


def make_stay(check_in: date = date(2026, 3, 10), check_out: date = date(2026, 3, 13), **overrides) -> StayRequest:
    fields = dict(
        base_rate=Decimal("100"),
        check_in=check_in,
        check_out=check_out,
        guest_count=2,
    )
    fields.update(overrides)
    return StayRequest(**fields)
