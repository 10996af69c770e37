from typing import AsyncGenerator, Optional
import httpx

from circulation.api.client import LibraryApiClient
from circulation.config import settings
from circulation.engine import CirculationEngine
from circulation.events import EventBus
from circulation.logs import configure_logging

async def get_engine(
    events: Optional[EventBus] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncGenerator[CirculationEngine, None]:
    configure_logging()
    async with LibraryApiClient(settings.LIBRARY_API_BASE_URL, transport=transport) as api:
        yield CirculationEngine(api, events)
