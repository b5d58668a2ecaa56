"""Pytest configuration and fixtures."""

import pytest
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Dict

from httpx import AsyncClient, ASGITransport

from main import app
from api.routes import get_resident_service
from core.handover import HandoverService
from core.locks import KeyedLock
from core.progress import ProgressService
from core.resident_service import ResidentService
from db.memory import InMemoryStorage


# Thursday
THURSDAY = datetime(2024, 3, 14)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = moment

    def at(self, hour: int, minute: int = 0, second: int = 0) -> datetime:
        """Move to a time of day on the current date."""
        self.moment = self.moment.replace(hour=hour, minute=minute, second=second, microsecond=0)
        return self.moment

    def advance(self, **kwargs) -> datetime:
        self.moment += timedelta(**kwargs)
        return self.moment


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at 08:00 on a Thursday."""
    return FrozenClock(THURSDAY.replace(hour=8))


@pytest.fixture
def storage() -> InMemoryStorage:
    """Provide fresh in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def resident_service(storage: InMemoryStorage, clock: FrozenClock) -> ResidentService:
    """Provide resident service with its own lock registry and frozen clock."""
    return ResidentService(storage=storage, clock=clock, locks=KeyedLock())


@pytest.fixture
def handover_service(
    storage: InMemoryStorage,
    resident_service: ResidentService
) -> HandoverService:
    return HandoverService(storage=storage, resident_service=resident_service)


@pytest.fixture
def progress_service(storage: InMemoryStorage) -> ProgressService:
    return ProgressService(storage=storage)


@pytest.fixture
def resident_data() -> Dict[str, Any]:
    """Resident with breakfast, lunch, a night check and a twice-daily medication."""
    return {
        "home_id": "home_1",
        "group_id": "group_a",
        "first_name": "Edith",
        "last_name": "Clarke",
        "room_number": "12",
        "personal_care": {
            "breakfast": {
                "frequency": {"per": "day", "times": 1},
                "timings": ["08:00"]
            },
            "lunch": {
                "frequency": {"per": "day", "times": 1},
                "timings": ["12:30"]
            },
            "nightCheck": {
                "frequency": {"per": "night", "times": 1},
                "timings": []
            }
        },
        "medications": [
            {
                "name": "Paracetamol",
                "dosage": "500mg",
                "frequency": {"per": "day", "times": 2},
                "timings": ["09:00", "21:00"]
            }
        ]
    }


@pytest.fixture
async def resident(resident_service: ResidentService, resident_data: Dict[str, Any]):
    """A stored resident created from resident_data."""
    return await resident_service.create_resident(resident_data)


@pytest.fixture
async def test_client(resident_service: ResidentService) -> AsyncGenerator[AsyncClient, None]:
    """Provide test HTTP client backed by in-memory storage."""
    async def override() -> ResidentService:
        return resident_service

    app.dependency_overrides[get_resident_service] = override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
