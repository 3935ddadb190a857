from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional

from api.src.models.run import RunDetail, RunSummary
from api.src.services.runs import RunRegistry, get_registry

router = APIRouter(prefix="/runs", tags=["runs"])

@router.get("", response_model=List[RunSummary])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    status: Optional[str] = None,
    registry: RunRegistry = Depends(get_registry),
):
    """List runs, newest first."""
    records = registry.list(status=status)[offset:offset + limit]
    return [RunSummary.from_record(record) for record in records]

@router.get("/stats")
async def get_run_stats(registry: RunRegistry = Depends(get_registry)):
    """Count runs by status."""
    counts = registry.counts()
    return {
        "runs": counts,
        "total_runs": sum(counts.values()),
    }

@router.get("/{run_id}", response_model=RunDetail)
async def get_run(run_id: str, registry: RunRegistry = Depends(get_registry)):
    """Get a specific run, with its report once finished."""
    record = registry.get(run_id)

    if not record:
        raise HTTPException(status_code=404, detail="Run not found")

    return RunDetail.from_record(record)

@router.post("/{run_id}/cancel")
async def cancel_run(run_id: str, registry: RunRegistry = Depends(get_registry)):
    """Cancel a queued or running run."""
    record = registry.get(run_id)

    if not record:
        raise HTTPException(status_code=404, detail="Run not found")

    if not registry.cancel(run_id):
        raise HTTPException(status_code=409, detail=f"Run is already {record.status}")

    return {"run_id": run_id, "status": "cancelling"}
