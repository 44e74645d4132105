"""Health check endpoints."""

from fastapi import APIRouter

from walletmigrator.chains import get_networks
from walletmigrator.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "walletmigrator"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration and network registry."""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "walletmigrator",
        "version": "0.1.0",
        "config": settings.get_safe_dict(),
        "networks": [
            {"name": n.name, "chainId": n.chain_id, "tokens": [t.symbol for t in n.tokens]}
            for n in get_networks().values()
        ],
    }
