from fastapi import APIRouter, Depends

from api.src.services.runs import RunRegistry, get_registry

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check(registry: RunRegistry = Depends(get_registry)):
    active = len(registry.list(status="running")) + len(registry.list(status="queued"))
    return {"status": "healthy", "service": "flowgate-api", "active_runs": active}
