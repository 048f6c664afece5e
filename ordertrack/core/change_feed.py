"""
Realtime change feed.

Thin wrapper over Supabase realtime channels: one channel per
(table, filter) subscription, listening to every postgres change event.
Subscribers only learn *that* something changed; resources re-fetch.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from supabase import AsyncClient

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Dict[str, Any]], None]


@dataclass(frozen=True)
class ChangeEvent:
    kind: str  # INSERT | UPDATE | DELETE
    table: Optional[str]
    row_id: Optional[Any]


def parse_change(payload: Dict[str, Any]) -> ChangeEvent:
    """Read the event kind and affected row id out of a realtime payload."""
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    kind = data.get("type") or data.get("eventType") or "UNKNOWN"
    record = data.get("record") or data.get("new") or {}
    old_record = data.get("old_record") or data.get("old") or {}
    row_id = record.get("id", old_record.get("id"))
    return ChangeEvent(kind=str(kind).upper(), table=data.get("table"), row_id=row_id)


class FeedSubscription:
    def __init__(self, supabase: AsyncClient, channel: Any, table: str):
        self.supabase = supabase
        self.channel = channel
        self.table = table
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        try:
            await self.supabase.remove_channel(self.channel)
        except Exception as e:
            logger.warning(f"Failed to remove realtime channel for {self.table}: {e}")


class ChangeFeed:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        row_filter: Optional[str] = None,
    ) -> FeedSubscription:
        """Listen to inserts, updates and deletes on public.<table>."""
        topic = f"{table}:{row_filter or 'all'}:{uuid.uuid4().hex[:8]}"
        channel = self.supabase.channel(topic)
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=table,
            filter=row_filter,
            callback=callback,
        )
        await channel.subscribe()
        logger.debug(f"Subscribed to {table} changes (filter={row_filter})")
        return FeedSubscription(self.supabase, channel, table)
