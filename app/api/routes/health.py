from __future__ import annotations

import asyncio
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.ephemeral_store import get_expiring_store

router = APIRouter(tags=["health"])

_PROBE_TTL_SECONDS = 5


def _ok_check(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": "ok"}
    if extra:
        payload.update(extra)
    return payload


def _failed_check(error: str) -> dict[str, str]:
    return {"status": "failed", "error": error}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _ok_check()
    except Exception as exc:
        return _failed_check(str(exc))


async def _check_ephemeral_store() -> dict[str, Any]:
    backend = get_settings().ephemeral_store_backend
    probe_key = f"health:{uuid4().hex}"
    try:
        store = get_expiring_store()
        await store.set(probe_key, "1", ttl_seconds=_PROBE_TTL_SECONDS)
        value = await store.get(probe_key)
        await store.delete(probe_key)
        if value != "1":
            return _failed_check(f"unexpected probe value: {value!r}")
        return _ok_check({"backend": backend})
    except Exception as exc:
        return _failed_check(str(exc))


async def _collect_checks() -> dict[str, dict[str, Any]]:
    database, ephemeral_store = await asyncio.gather(
        _check_database(),
        _check_ephemeral_store(),
    )
    return {"database": database, "ephemeral_store": ephemeral_store}


def _all_checks_ok(checks: dict[str, dict[str, Any]]) -> bool:
    return all(check.get("status") == "ok" for check in checks.values())


@router.get("/health")
async def health() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ok"})


@router.get("/ready")
async def ready() -> JSONResponse:
    checks = await _collect_checks()
    is_ready = _all_checks_ok(checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if is_ready else "not_ready",
            "checks": checks,
        },
    )
