# backend/stockledger/routes/system.py
"""
System health endpoint.

Reports whether the entity store answers, and how fast.
"""

import time
from flask import Blueprint, current_app

from ..storage import get_store
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_store_health() -> dict:
    """
    Check store connectivity with a cheap read.

    Returns dict with status and details.
    """
    start_time = time.time()
    store = get_store()
    try:
        details = store.ping()
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Store health check failed")
        return {
            "status": "unhealthy",
            "store": store.name,
            "latency_ms": round(elapsed_ms, 2),
            "error": "Store error",
        }

    elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": "healthy",
        "store": store.name,
        "latency_ms": round(elapsed_ms, 2),
        "details": details,
    }


@system_bp.get("/api/health")
def health():
    store_health = check_store_health()
    healthy = store_health["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"store": store_health},
    }
    return body, 200 if healthy else 503
