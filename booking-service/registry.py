from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional

from config import Settings
from data import sample_rooms
from flipt_service import FliptService
from models import Room
from orchestrator import BookingOrchestrator, utcnow
from rates import RateTable
from store import BookingStore


@dataclass
class ServiceRegistry:
    """Process-wide collaborators, built once by build_registry()."""
    settings: Settings
    rates: RateTable
    store: BookingStore
    flags: FliptService
    orchestrator: BookingOrchestrator


def build_registry(
    settings: Settings,
    *,
    rooms: Optional[Iterable[Room]] = None,
    flags: Optional[FliptService] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ServiceRegistry:
    """Construct settings-driven collaborators in dependency order."""
    rates = RateTable.from_settings(settings)
    store = BookingStore(sample_rooms() if rooms is None else rooms)
    flags = flags or FliptService(settings)
    orchestrator = BookingOrchestrator(
        store=store,
        rates=rates,
        flags=flags,
        hotel_id=settings.hotel_id,
        clock=clock,
    )
    return ServiceRegistry(
        settings=settings,
        rates=rates,
        store=store,
        flags=flags,
        orchestrator=orchestrator,
    )
