from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Seller Catalog Events"}

@router.get("/health/stream")
async def stream_health(request: Request):
    """Live subscriptions, dispatcher listener and notifier outbox state"""
    state = request.app.state
    registry = getattr(state, "registry", None)
    dispatcher = getattr(state, "dispatcher", None)
    notifier = getattr(state, "notifier", None)

    listening = bool(dispatcher and dispatcher.listening)
    return {
        "status": "healthy" if listening else "degraded",
        "registry": registry.get_stats() if registry else None,
        "dispatcher": dispatcher.get_stats() if dispatcher else None,
        "notifier": notifier.get_stats() if notifier else None,
    }

@router.get("/health/db")
async def database_health():
    """Check database connectivity"""
    try:
        from app.database import async_session

        async with async_session() as session:
            await session.execute(text("SELECT 1"))
            return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e)
        }
