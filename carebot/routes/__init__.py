"""Carebot API sub-routers.

Shared helpers and router modules for the FastAPI application.
"""

from __future__ import annotations

import json

from fastapi.responses import JSONResponse


def error_response(status_code: int, message: str, detail: str | None = None) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: dict = {"error": message}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def sse_event(event_type: str, data: dict) -> str:
    """Format an SSE event string."""
    payload = json.dumps(data, default=str)
    return f"event: {event_type}\ndata: {payload}\n\n"
