"""
Health check endpoint for deployment monitoring.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check(request: Request):
    """
    Returns 200 with ``degraded`` status when the database is unreachable.
    """
    status = "healthy"
    
    try:
        db = request.app.state.session_factory()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {e.__class__.__name__}"
        status = "degraded"
    
    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": db_status,
        "payments": "configured" if request.app.state.gateway.configured else "disabled",
        "version": "1.0.0",
    }
