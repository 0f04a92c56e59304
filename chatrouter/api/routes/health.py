from fastapi import APIRouter, Depends

from chatrouter.core.config import Settings, get_settings

router = APIRouter()


@router.get("/ready", tags=["health"])
async def readiness_probe(config: Settings = Depends(get_settings)) -> dict[str, object]:
    """Ready once a backend is configured; lists the classifier order in use."""
    backend_configured = bool(config.backend_api_base_url)
    return {
        "status": "ok" if backend_configured else "degraded",
        "backend_configured": backend_configured,
        "classifier_providers": list(config.classifier_providers),
    }


@router.get("/live", tags=["health"])
async def liveness_probe() -> dict[str, str]:
    """Simple liveness check."""
    return {"status": "alive"}
