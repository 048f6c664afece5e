import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ordertrack.core.errors import NotFoundError, OrderTrackError, ValidationError
from ordertrack.core.resource import RemoteResource
from ordertrack.modules.assignments.service import replace_assignments, require_company_workers
from ordertrack.modules.orders.images import ImageUpload, OrderImageStore
from ordertrack.modules.orders.schemas import OrderCreate, OrderUpdate, ORDER_STATUSES
from ordertrack.modules.orders.visibility import search_orders, visible_orders

logger = logging.getLogger(__name__)

ORDER_SELECT = (
    "*, profiles:created_by(full_name), "
    "order_assignments(id, worker_id, starred, marked_done, profiles:worker_id(full_name))"
)


class OrdersResource(RemoteResource):
    name = "orders"

    def __init__(self, *args, images: Optional[OrderImageStore] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.images = images

    def watched_tables(self) -> List[Tuple[str, Optional[str]]]:
        # worker visibility depends on assignments too, so both feeds trigger a re-fetch
        return [
            ("orders", f"company_id=eq.{self.company_id}"),
            ("order_assignments", None),
        ]

    async def _fetch(self) -> List[Dict[str, Any]]:
        if not self.company_id:
            return []
        rows = await self._run(
            self.supabase.table("orders")
                .select(ORDER_SELECT)
                .eq("company_id", self.company_id)
                .order("created_at", desc=True)
        )
        return visible_orders(rows, self.profile)

    def filtered(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        return search_orders(self.items, status=status, term=search)

    def find(self, order_id: str) -> Optional[Dict[str, Any]]:
        return next((o for o in self.items if o.get("id") == order_id), None)

    async def get(self, order_id: str) -> Dict[str, Any]:
        cached = self.find(order_id)
        if cached is not None:
            return cached
        company_id = self._require_company()
        rows = await self._run(
            self.supabase.table("orders")
                .select(ORDER_SELECT)
                .eq("id", order_id)
                .eq("company_id", company_id)
                .limit(1)
        )
        visible = visible_orders(rows, self.profile)
        if not visible:
            raise NotFoundError("Order not found.")
        return visible[0]

    async def create(self, order_data: OrderCreate) -> Dict[str, Any]:
        title = (order_data.title or "").strip()
        if not title:
            raise ValidationError("Order title is required.")
        self._require_manager("create orders")
        company_id = self._require_company()
        worker_ids = await require_company_workers(
            self.supabase, company_id, order_data.assigned_workers or [], timeout=self.timeout
        )

        payload = order_data.model_dump(mode="json", exclude={"assigned_workers"})
        payload.update({"title": title, "company_id": company_id, "created_by": self.user_id})
        rows = await self._run(self.supabase.table("orders").insert(payload))
        order = self._require_rows(rows, "Order")[0]
        logger.info(f"Created order {order.get('id')} for company {company_id}")

        if worker_ids:
            await replace_assignments(self.supabase, order["id"], worker_ids, timeout=self.timeout)
        self.schedule_refresh()
        return order

    async def update(self, order_id: str, order_data: OrderUpdate) -> Dict[str, Any]:
        self._require_manager("edit orders")
        updates = order_data.model_dump(mode="json", exclude_unset=True, exclude={"assigned_workers"})
        if "title" in updates:
            updates["title"] = (updates["title"] or "").strip()
            if not updates["title"]:
                raise ValidationError("Order title is required.")
        if not updates and order_data.assigned_workers is None:
            raise ValidationError("Nothing to update.")
        company_id = self._require_company()
        worker_ids = None
        if order_data.assigned_workers is not None:
            worker_ids = await require_company_workers(
                self.supabase, company_id, order_data.assigned_workers, timeout=self.timeout
            )

        if updates:
            rows = await self._run(
                self.supabase.table("orders")
                    .update(updates)
                    .eq("id", order_id)
                    .eq("company_id", company_id)
            )
            order = self._require_rows(rows, "Order")[0]
        else:
            order = await self.get(order_id)

        if worker_ids is not None:
            await replace_assignments(self.supabase, order_id, worker_ids, timeout=self.timeout)
        self.schedule_refresh()
        return order

    async def update_status(self, order_id: str, status: str) -> Dict[str, Any]:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}.")
        self._require_manager("change order status")
        company_id = self._require_company()
        rows = await self._run(
            self.supabase.table("orders")
                .update({"status": status})
                .eq("id", order_id)
                .eq("company_id", company_id)
        )
        self._require_rows(rows, "Order")
        self.schedule_refresh()
        return rows[0]

    async def delete(self, order_id: str) -> None:
        """Assignments go first; the backend refuses to drop an order that still has them."""
        self._require_manager("delete orders")
        company_id = self._require_company()
        existing = await self._run(
            self.supabase.table("orders")
                .select("id, image_urls")
                .eq("id", order_id)
                .eq("company_id", company_id)
                .limit(1)
        )
        order = self._require_rows(existing, "Order")[0]

        await self._run(self.supabase.table("order_assignments").delete().eq("order_id", order_id))
        rows = await self._run(
            self.supabase.table("orders")
                .delete()
                .eq("id", order_id)
                .eq("company_id", company_id)
        )
        self._require_rows(rows, "Order")
        logger.info(f"Deleted order {order_id}")

        if self.images is not None:
            for url in order.get("image_urls") or []:
                await self.images.delete(url)
        self.schedule_refresh()

    async def _stored_image_urls(self, order_id: str) -> List[str]:
        """The order's image list as the backend has it now; the snapshot may lag a recent write."""
        company_id = self._require_company()
        rows = await self._run(
            self.supabase.table("orders")
                .select("id, image_urls")
                .eq("id", order_id)
                .eq("company_id", company_id)
                .limit(1)
        )
        order = self._require_rows(rows, "Order")[0]
        return list(order.get("image_urls") or [])

    async def add_images(self, order_id: str, uploads: Sequence[ImageUpload]) -> Dict[str, Any]:
        self._require_manager("add order images")
        if self.images is None:
            raise ValidationError("Image uploads are not available.")
        existing = await self._stored_image_urls(order_id)
        urls = await self.images.upload(uploads, existing_count=len(existing))
        try:
            return await self.update(order_id, OrderUpdate(image_urls=existing + urls))
        except OrderTrackError:
            for url in urls:
                await self.images.delete(url)
            raise

    async def remove_image(self, order_id: str, index: int) -> Dict[str, Any]:
        self._require_manager("remove order images")
        existing = await self._stored_image_urls(order_id)
        if index < 0 or index >= len(existing):
            raise NotFoundError("Image not found.")
        removed = existing.pop(index)
        updated = await self.update(order_id, OrderUpdate(image_urls=existing))
        if self.images is not None:
            await self.images.delete(removed)
        return updated
