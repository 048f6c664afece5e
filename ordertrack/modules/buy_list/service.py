import logging
from typing import Any, Dict, List, Optional, Tuple

from ordertrack.core.errors import ValidationError
from ordertrack.core.resource import RemoteResource
from ordertrack.modules.buy_list.schemas import BuyListItemCreate, BuyListItemUpdate, BuyListSummary

logger = logging.getLogger(__name__)

BUY_LIST_SELECT = "*, profiles:added_by(full_name)"
PENDING = "pending"
RECEIVED = "received"


class BuyListResource(RemoteResource):
    """Company shopping list. Any member may add, edit, tick off or delete items."""

    name = "buy_list"

    def watched_tables(self) -> List[Tuple[str, Optional[str]]]:
        return [("buy_list", f"company_id=eq.{self.company_id}")]

    async def _fetch(self) -> List[Dict[str, Any]]:
        if not self.company_id:
            return []
        return await self._run(
            self.supabase.table("buy_list")
                .select(BUY_LIST_SELECT)
                .eq("company_id", self.company_id)
                .order("created_at", desc=True)
        )

    def find(self, item_id: str) -> Optional[Dict[str, Any]]:
        return next((i for i in self.items if i.get("id") == item_id), None)

    def partition(self) -> BuyListSummary:
        pending = [i for i in self.items if i.get("status") != RECEIVED]
        received = [i for i in self.items if i.get("status") == RECEIVED]
        total = sum(float(i.get("estimated_cost") or 0) for i in pending)
        return BuyListSummary(
            pending=pending,
            received=received,
            pending_count=len(pending),
            received_count=len(received),
            pending_estimated_total=round(total, 2),
        )

    async def add_item(self, item: BuyListItemCreate) -> Dict[str, Any]:
        name = (item.item_name or "").strip()
        if not name:
            raise ValidationError("Please enter an item name.")
        company_id = self._require_company()
        rows = await self._run(
            self.supabase.table("buy_list").insert({
                "item_name": name,
                "estimated_cost": item.estimated_cost,
                "status": PENDING,
                "company_id": company_id,
                "added_by": self.user_id,
            })
        )
        self._require_rows(rows, "Item")
        self.schedule_refresh()
        return rows[0]

    async def update_item(self, item_id: str, item: BuyListItemUpdate) -> Dict[str, Any]:
        updates = item.model_dump(exclude_unset=True)
        if "item_name" in updates:
            updates["item_name"] = (updates["item_name"] or "").strip()
            if not updates["item_name"]:
                raise ValidationError("Please enter an item name.")
        if not updates:
            raise ValidationError("Nothing to update.")
        return await self._update(item_id, updates)

    async def set_status(self, item_id: str, status: str) -> Dict[str, Any]:
        if status not in (PENDING, RECEIVED):
            raise ValidationError(f"Unknown item status: {status}.")
        return await self._update(item_id, {"status": status})

    async def toggle_bought(self, item_id: str) -> Dict[str, Any]:
        current = self.find(item_id)
        if current is None:
            company_id = self._require_company()
            rows = await self._run(
                self.supabase.table("buy_list")
                    .select("id, status")
                    .eq("id", item_id)
                    .eq("company_id", company_id)
                    .limit(1)
            )
            current = self._require_rows(rows, "Item")[0]
        status = PENDING if current.get("status") == RECEIVED else RECEIVED
        return await self._update(item_id, {"status": status})

    async def delete_item(self, item_id: str) -> None:
        company_id = self._require_company()
        rows = await self._run(
            self.supabase.table("buy_list")
                .delete()
                .eq("id", item_id)
                .eq("company_id", company_id)
        )
        self._require_rows(rows, "Item")
        self.schedule_refresh()

    async def _update(self, item_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        company_id = self._require_company()
        rows = await self._run(
            self.supabase.table("buy_list")
                .update(updates)
                .eq("id", item_id)
                .eq("company_id", company_id)
        )
        self._require_rows(rows, "Item")
        self.schedule_refresh()
        return rows[0]
