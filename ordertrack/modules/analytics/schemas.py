from pydantic import BaseModel
from typing import Dict, List, Optional


class OrderStats(BaseModel):
    total: int
    pending: int
    completed: int
    high_priority_open: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    recent_30_days: int
    completion_rate: int


class WorkerPerformance(BaseModel):
    id: str
    full_name: Optional[str] = None
    total_orders: int
    completed_orders: int
    completion_rate: int


class AnalyticsResponse(BaseModel):
    stats: OrderStats
    workers: List[WorkerPerformance] = []
    worker_count: int = 0


class DashboardResponse(BaseModel):
    role: str
    stats: Dict[str, int]
    recent_orders: List[dict]
    highlighted_orders: List[dict]
