from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

from booking.config import Settings
from booking.container import ServiceContainer
from booking.main import create_app
from booking.schemas.appointments import CountryISO
from tests.fakes import (
    FakeClock,
    InMemoryCountryStore,
    InMemoryScheduleStore,
    InMemoryTrackingStore,
    RecordingChannel,
    make_schedule,
)

# Load environment variables from .env file
load_dotenv()


@pytest.fixture
def settings() -> Settings:
    """Settings for tests; metrics off so apps can be built repeatedly."""
    return Settings(METRICS_ENABLED=False, LOG_FORMAT="console", ENVIRONMENT="test")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracking_store() -> InMemoryTrackingStore:
    return InMemoryTrackingStore()


@pytest.fixture
def country_store() -> InMemoryCountryStore:
    return InMemoryCountryStore()


@pytest.fixture
def schedule_store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore(
        [
            make_schedule(100, CountryISO.PE),
            make_schedule(101, CountryISO.PE),
            make_schedule(200, CountryISO.CL),
        ]
    )


@pytest.fixture
def event_bus() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def country_publisher() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def container(
    settings,
    tracking_store,
    country_store,
    schedule_store,
    event_bus,
    country_publisher,
    clock,
) -> ServiceContainer:
    """Service container wired to in-memory stores."""
    return ServiceContainer.assemble(
        settings=settings,
        tracking_store=tracking_store,
        country_store=country_store,
        schedule_store=schedule_store,
        event_bus=event_bus,
        country_publisher=country_publisher,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app = create_app(container=container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_request() -> dict:
    """Sample appointment request body."""
    return {"insuredId": "12345", "countryISO": "PE", "scheduleId": 100}
