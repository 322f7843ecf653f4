"""
Sweep Routes
Manual trigger for the scheduled leave sweeps
"""
from fastapi import APIRouter, Depends
from typing import List

from campus_leave.api.deps import get_services
from campus_leave.api.routes.auth import require_roles
from campus_leave.core.database import Services
from campus_leave.models.leave import SweepReport
from campus_leave.models.user import SUPERVISOR_ROLES, UserRecord


router = APIRouter()


@router.post("/{job}", response_model=List[SweepReport])
async def run_sweep(
    job: str,
    supervisor: UserRecord = Depends(require_roles(SUPERVISOR_ROLES)),
    services: Services = Depends(get_services),
):
    """
    Run one sweep, or ``all`` of them
    """
    if job == "all":
        return await services.leaves.run_all_sweeps()
    return [await services.leaves.run_sweep(job)]
