import time
import json
import logging
import os
from typing import Optional
from functools import wraps

from fastapi import HTTPException

logger = logging.getLogger("thinkdrills.telemetry")

TELEMETRY_TABLE = "telemetry_events"


def emit_event(event: str, *, route: str, student_id: Optional[str] = None,
               category: Optional[str] = None, interest: Optional[str] = None,
               question_count: Optional[int] = None, error_type: Optional[str] = None,
               latency_ms: Optional[int] = None, ok: Optional[bool] = None) -> dict:
    payload = {
        "event": event,
        "route": route,
        "student_id": student_id,
        "category": category,
        "interest": interest,
        "question_count": question_count,
        "error_type": error_type,
        "latency_ms": latency_ms,
        "ok": ok,
    }
    # single-line JSON so log search can pick fields out directly
    logger.info("telemetry=%s", json.dumps({**payload, "ts": time.time()}, separators=(",", ":")))

    if os.getenv("ENABLE_TELEMETRY_DB", "0") == "1":
        try:
            from thinkdrills.core.deps import get_supabase_client
            get_supabase_client().table(TELEMETRY_TABLE).insert(payload).execute()
        except Exception as e:
            logger.error("[telemetry.emit_event] %s", e, exc_info=True)
    return payload


def _error_type(exc: Exception) -> str:
    # HTTPException carries the mapped generation failure; keep the status visible.
    if isinstance(exc, HTTPException):
        return f"HTTP{exc.status_code}"
    return exc.__class__.__name__


def instrument(route: str):
    """Emit one ``api_call`` event with latency and outcome per handler call."""
    def deco(fn):
        @wraps(fn)
        async def wrapped(*args, **kwargs):
            t0 = time.perf_counter()
            err = None
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                err = _error_type(e)
                raise
            finally:
                emit_event(
                    "api_call", route=route,
                    latency_ms=int((time.perf_counter() - t0) * 1000),
                    ok=err is None, error_type=err,
                )
        return wrapped
    return deco
