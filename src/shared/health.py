from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from src.dependencies import Container, get_container

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(container: Container = Depends(get_container)):
    checks = await container.health()
    ok = checks.get("store") == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ok" if ok else "degraded", "checks": checks},
    )
