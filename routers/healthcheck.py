from fastapi import APIRouter, Request
from sqlalchemy import text

from core.config import logger

router = APIRouter(tags=["health"])


@router.get("/healthcheck")
def healthcheck(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "ok": False,
    }
    db = request.app.state.session_factory()
    try:
        db.execute(text("SELECT 1"))
        response["database"] = "✅ Connected & Working"
        response["ok"] = True
    except Exception as e:
        logger.warning(f"[health] database check failed: {e}")
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    finally:
        db.close()
    return response
