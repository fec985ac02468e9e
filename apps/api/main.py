"""
Rx Print API - FastAPI application entry point.

Serves visit ingest, chain lookup, page plans and prescription PDFs.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from packages.db.database import init_db
from packages.shared.normalize import RecordNormalizationError


def _parse_csv_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return [value.strip() for value in raw.split(",") if value.strip()]


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("rxprint")

API_VERSION = "0.1.0"

app = FastAPI(
    title="Rx Print API",
    description="Prescription continuity printing for dental clinics",
    version=API_VERSION,
)

# Front desk app runs locally next to the print station by default
cors_allow_origins = _parse_csv_env("CORS_ALLOW_ORIGINS", ["http://localhost:3000", "http://127.0.0.1:3000"])
audit_logging_enabled = _parse_bool_env("AUDIT_LOGGING", True)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id"],
    expose_headers=["X-Request-Id", "X-Page-Count", "X-Page-Plan-Degraded"],
)


@app.middleware("http")
async def print_audit_middleware(request: Request, call_next):
    started = time.perf_counter()
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id

    if audit_logging_enabled and request.url.path != "/health":
        duration_ms = int((time.perf_counter() - started) * 1000)
        pages = response.headers.get("X-Page-Count", "-")
        degraded = "X-Page-Plan-Degraded" in response.headers
        logger.info(
            "request_audit request_id=%s method=%s path=%s status=%s duration_ms=%s pages=%s degraded=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            pages,
            degraded,
        )

    return response


@app.exception_handler(RecordNormalizationError)
async def unreadable_record_handler(request: Request, exc: RecordNormalizationError):
    # Stored payloads that no longer normalize surface as unprocessable, not as 500s
    logger.warning(f"Unreadable record on {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.on_event("startup")
def startup():
    logger.info("Initializing record store...")
    init_db()


from apps.api.routes.prescriptions import router as prescriptions_router  # noqa: E402
from apps.api.routes.visits import router as visits_router  # noqa: E402

app.include_router(visits_router)
app.include_router(prescriptions_router)


@app.get("/health")
def health():
    return {"status": "ok", "version": API_VERSION}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.api.main:app", host="0.0.0.0", port=8000, reload=True)
