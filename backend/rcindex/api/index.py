from __future__ import annotations

from uuid import uuid4

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel

from rcindex import browse
from rcindex.auth import CHALLENGE, check_basic_auth
from rcindex.errors import AuthError, RcloneIndexError
from rcindex.logging.ndjson import log_event
from rcindex.render import render_listing
from rcindex.settings.env import load_settings


router = APIRouter()


class ErrorBody(BaseModel):
    error: str
    details: str = ""


def error_response(details: str, status_code: int = 500) -> JSONResponse:
    body = ErrorBody(error="Internal server error", details=details)
    return JSONResponse(body.model_dump(), status_code=status_code)


@router.get("/_health")
def health() -> dict:
    return {"ok": True}


@router.get("/{path:path}")
async def api_index(request: Request, path: str) -> Response:
    settings = load_settings()
    request_path = path.strip("/")
    request_id = uuid4().hex[:12]

    try:
        check_basic_auth(settings, request.headers.get("authorization"))
    except AuthError as e:
        log_event(
            level="warn",
            event="auth.rejected",
            data={"path": request_path, "missing": e.missing},
            request_id=request_id,
        )
        return JSONResponse({"error": str(e)}, status_code=401, headers={"WWW-Authenticate": CHALLENGE})

    try:
        entries = await browse.list_directory(settings, request_path, request_id=request_id)
    except RcloneIndexError as e:
        log_event(
            level="error",
            event="listing.failed",
            data={"path": request_path, "error": str(e), "kind": type(e).__name__},
            request_id=request_id,
        )
        return error_response(str(e))

    return HTMLResponse(render_listing(entries, request_path, settings.dark_mode))
