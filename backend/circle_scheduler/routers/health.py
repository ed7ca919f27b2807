"""Health check, including the outbox dispatcher's state."""
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health_check(request: Request):
    dispatcher = getattr(request.app.state, "dispatcher", None)
    return {
        "status": "ok",
        "outbox": dispatcher.status() if dispatcher else {"running": False},
    }
