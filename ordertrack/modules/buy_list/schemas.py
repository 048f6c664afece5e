from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

BuyListStatus = Literal["pending", "received"]


class BuyListItemCreate(BaseModel):
    item_name: str
    estimated_cost: Optional[float] = Field(default=None, ge=0)


class BuyListItemUpdate(BaseModel):
    item_name: Optional[str] = None
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    status: Optional[BuyListStatus] = None


class BuyListItemResponse(BaseModel):
    id: str
    item_name: str
    estimated_cost: Optional[float] = None
    status: BuyListStatus = "pending"
    company_id: str
    added_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BuyListSummary(BaseModel):
    pending: List[dict]
    received: List[dict]
    pending_count: int
    received_count: int
    pending_estimated_total: float
