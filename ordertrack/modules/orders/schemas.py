from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date, datetime

OrderStatus = Literal["new", "in_progress", "completed", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]
AssignmentType = Literal["general", "specific"]

ORDER_STATUSES = ("new", "in_progress", "completed", "cancelled")
PRIORITIES = ("low", "medium", "high", "urgent")


class OrderCreate(BaseModel):
    title: str
    description: Optional[str] = None
    client_name: Optional[str] = None
    due_date: Optional[date] = None
    priority: Priority = "medium"
    category: Optional[str] = None
    status: OrderStatus = "new"
    quantity: Optional[int] = Field(default=None, ge=0)
    assignment_type: AssignmentType = "specific"
    image_urls: List[str] = []
    assigned_workers: Optional[List[str]] = None


class OrderUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    client_name: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[Priority] = None
    category: Optional[str] = None
    status: Optional[OrderStatus] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    assignment_type: Optional[AssignmentType] = None
    image_urls: Optional[List[str]] = None
    assigned_workers: Optional[List[str]] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderAssignmentSummary(BaseModel):
    id: str
    worker_id: str
    starred: bool = False
    marked_done: bool = False
    worker_name: Optional[str] = None


class OrderResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    client_name: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    quantity: Optional[int] = None
    assignment_type: Optional[str] = None
    image_urls: List[str] = []
    company_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    order_assignments: List[dict] = []

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    items: List[dict]
    loading: bool
    error: Optional[str] = None
    total: int
    shown: int
