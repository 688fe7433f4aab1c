from fastapi import APIRouter, Request
from typing import Dict, Any

router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint that verifies provider status"""
    runtime = request.app.state.runtime

    provider_status = {
        "solana_rpc": await runtime.rpc.health_check(),
        "jupiter": await runtime.oracle.health_check(),
    }
    if runtime.telegram is not None:
        provider_status["telegram"] = await runtime.telegram.health_check()

    all_healthy = all(
        status["status"] in ["healthy", "configured"]
        for status in provider_status.values()
    )

    return {
        "status": "healthy" if all_healthy else "degraded",
        "running": runtime.is_trading(),
        "listener": runtime.listener.state.value,
        "providers": provider_status,
    }


@router.get("/status")
async def bot_status(request: Request) -> Dict[str, Any]:
    """Listener, discovery, ledger and runtime config in one document"""
    return request.app.state.runtime.status()
