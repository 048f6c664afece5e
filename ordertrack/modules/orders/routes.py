from fastapi import APIRouter, Depends, File, UploadFile
from typing import List, Optional

from ordertrack.core.dependencies import get_assignments, get_orders, require_manager
from ordertrack.modules.assignments.schemas import AssignWorkersRequest, AssignmentResponse, MarkDoneRequest
from ordertrack.modules.assignments.service import AssignmentsResource
from ordertrack.modules.orders.images import ImageUpload
from ordertrack.modules.orders.schemas import (
    OrderCreate, OrderListResponse, OrderResponse, OrderStatusUpdate, OrderUpdate
)
from ordertrack.modules.orders.service import OrdersResource
from ordertrack.modules.profiles.schemas import Profile

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    orders: OrdersResource = Depends(get_orders)
):
    """Orders visible to the caller, optionally filtered by status and search term"""
    snapshot = orders.snapshot()
    shown = orders.filtered(status=status, search=search)
    return OrderListResponse(
        items=shown,
        loading=snapshot["loading"],
        error=snapshot["error"],
        total=len(snapshot["items"]),
        shown=len(shown),
    )


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    order_data: OrderCreate,
    manager: Profile = Depends(require_manager),
    orders: OrdersResource = Depends(get_orders)
):
    return await orders.create(order_data)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, orders: OrdersResource = Depends(get_orders)):
    return await orders.get(order_id)


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: str,
    order_data: OrderUpdate,
    manager: Profile = Depends(require_manager),
    orders: OrdersResource = Depends(get_orders)
):
    return await orders.update(order_id, order_data)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    status_data: OrderStatusUpdate,
    manager: Profile = Depends(require_manager),
    orders: OrdersResource = Depends(get_orders)
):
    return await orders.update_status(order_id, status_data.status)


@router.delete("/{order_id}", status_code=204)
async def delete_order(
    order_id: str,
    manager: Profile = Depends(require_manager),
    orders: OrdersResource = Depends(get_orders)
):
    """Delete the order together with its assignments and images"""
    await orders.delete(order_id)
    return None


@router.post("/{order_id}/images", response_model=OrderResponse)
async def upload_order_images(
    order_id: str,
    files: List[UploadFile] = File(...),
    manager: Profile = Depends(require_manager),
    orders: OrdersResource = Depends(get_orders)
):
    """Attach up to five reference images to an order"""
    uploads = [
        ImageUpload(filename=f.filename or "image", content_type=f.content_type, content=await f.read())
        for f in files
    ]
    return await orders.add_images(order_id, uploads)


@router.delete("/{order_id}/images/{index}", response_model=OrderResponse)
async def remove_order_image(
    order_id: str,
    index: int,
    manager: Profile = Depends(require_manager),
    orders: OrdersResource = Depends(get_orders)
):
    return await orders.remove_image(order_id, index)


@router.put("/{order_id}/assignments", response_model=List[AssignmentResponse])
async def replace_order_assignments(
    order_id: str,
    assign_data: AssignWorkersRequest,
    manager: Profile = Depends(require_manager),
    assignments: AssignmentsResource = Depends(get_assignments)
):
    """Replace the order's workers; every remaining assignment starts unstarred and not done"""
    return await assignments.assign_workers(order_id, assign_data.worker_ids)


@router.post("/{order_id}/done", response_model=AssignmentResponse)
async def mark_order_done(
    order_id: str,
    done_data: MarkDoneRequest,
    assignments: AssignmentsResource = Depends(get_assignments)
):
    """Mark the caller's part of the order done or not done"""
    return await assignments.set_marked_done(order_id, done_data.done)
