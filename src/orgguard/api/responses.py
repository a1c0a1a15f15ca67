from __future__ import annotations

from typing import Any

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"


def request_meta(request: Request) -> dict[str, Any]:
    return {"request_id": getattr(request.state, "request_id", None)}


def envelope(request: Request, data: Any, **meta: Any) -> dict[str, Any]:
    """Standard success body: ``{"data": ..., "meta": {"request_id": ...}}``."""
    return {"data": data, "meta": {**request_meta(request), **meta}}
