from __future__ import annotations

import importlib.metadata
import time
from typing import Any

from fastapi import APIRouter
from fastapi import Request


router = APIRouter()


def _pkg_version(name: str) -> str | None:
    try:
        return str(importlib.metadata.version(name))
    except importlib.metadata.PackageNotFoundError:
        return None


@router.get("/healthz")
def healthz(request: Request) -> dict[str, Any]:
    fortune = request.app.state.fortune
    return {"status": "ok", "adapter_connected": bool(fortune.adapter.connected)}


@router.get("/version")
def version(request: Request) -> dict[str, Any]:
    fortune = request.app.state.fortune
    return {
        "service": "fortune",
        "version": _pkg_version("fortune"),
        "adapter": fortune.adapter.name,
        "resources": sorted(fortune.adapter.models),
        "deps": {
            "fastapi": _pkg_version("fastapi"),
            "pydantic": _pkg_version("pydantic"),
            "uvicorn": _pkg_version("uvicorn"),
            "inflection": _pkg_version("inflection"),
        },
        "ts": time.time(),
    }
