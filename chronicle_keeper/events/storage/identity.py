from __future__ import annotations

from .utils import _store_errors


class EventStoreIdentityMixin:
    async def resolve_actor_id(self, actor_name: str) -> str | None:
        """Canonical id for an actor name; the most recently updated mapping wins."""
        name = str(actor_name or "").strip()
        if not name:
            return None
        db = self._require_db()
        with _store_errors("resolve_actor_id"):
            async with db.execute(
                """
                SELECT CAST(uuid AS TEXT) AS uuid
                FROM uuid_mappings
                WHERE actor_name = ?
                ORDER BY updated_at DESC, id DESC
                LIMIT 1
                """,
                (name,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None or row["uuid"] is None:
            return None
        value = str(row["uuid"]).strip()
        return value or None

    async def record_actor_mapping(
        self,
        actor_name: str,
        actor_id: str,
        *,
        updated_at: str | None = None,
    ) -> None:
        name = str(actor_name or "").strip()
        uuid = str(actor_id or "").strip()
        if not (name and uuid):
            raise ValueError("actor mapping requires both a name and an id")
        db = self._require_db()
        with _store_errors("record_actor_mapping"):
            await db.execute(
                """
                INSERT INTO uuid_mappings (actor_name, uuid, updated_at)
                VALUES (?, ?, COALESCE(?, CURRENT_TIMESTAMP))
                """,
                (name, uuid, updated_at),
            )
            await db.commit()
