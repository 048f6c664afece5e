from pydantic import BaseModel
from typing import List, Optional


class AssignWorkersRequest(BaseModel):
    worker_ids: List[str]


class StarRequest(BaseModel):
    starred: Optional[bool] = None  # None flips the current value


class MarkDoneRequest(BaseModel):
    done: bool = True


class AssignmentResponse(BaseModel):
    id: str
    order_id: str
    worker_id: str
    starred: bool = False
    marked_done: bool = False

    class Config:
        from_attributes = True
