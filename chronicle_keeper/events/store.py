from __future__ import annotations

from .storage.identity import EventStoreIdentityMixin
from .storage.queries import EventStoreQueriesMixin
from .storage.schema import EventStoreConnectionMixin
from .storage.utils import _store_errors


class EventStore(
    EventStoreConnectionMixin,
    EventStoreIdentityMixin,
    EventStoreQueriesMixin,
):
    """Read side of the game's append-only event log, plus identity mappings."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        db = self._require_db()
        with _store_errors("ping"):
            await db.execute("SELECT 1")
