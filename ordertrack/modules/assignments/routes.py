from fastapi import APIRouter, Depends

from ordertrack.core.dependencies import get_assignments
from ordertrack.modules.assignments.schemas import AssignmentResponse, StarRequest
from ordertrack.modules.assignments.service import AssignmentsResource

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.get("")
async def list_assignments(assignments: AssignmentsResource = Depends(get_assignments)):
    """Managers: every assignment of company orders. Workers: their own."""
    return {**assignments.snapshot(), "starred_count": assignments.starred_count()}


@router.patch("/{assignment_id}/star", response_model=AssignmentResponse)
async def star_assignment(
    assignment_id: str,
    star_data: StarRequest,
    assignments: AssignmentsResource = Depends(get_assignments)
):
    return await assignments.toggle_starred(assignment_id, star_data.starred)
