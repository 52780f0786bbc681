from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import Response

from rcindex.api.index import error_response, router as index_router
from rcindex.logging.ndjson import init_logging, log_event


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _load_dotenvs() -> None:
    """
    Load environment variables from:
    - backend/.env
    - repo-root/.env
    Values already present in the process environment win.
    """
    backend_dir = Path(__file__).resolve().parents[1]
    repo_root = backend_dir.parent

    load_dotenv(backend_dir / ".env")
    load_dotenv(repo_root / ".env")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    try:
        init_logging()
    except OSError:
        pass
    log_event(level="info", event="app.startup", data={"ok": True})
    yield


def create_app() -> FastAPI:
    _load_dotenvs()
    app = FastAPI(title="Rclone Index", version="0.1.0", lifespan=_lifespan)

    @app.middleware("http")
    async def cors_and_errors(request: Request, call_next):  # type: ignore[no-untyped-def]
        if request.method == "OPTIONS":
            response: Response = Response(status_code=200)
        else:
            try:
                response = await call_next(request)
            except Exception as e:  # noqa: BLE001
                log_event(
                    level="error",
                    event="api.exception",
                    data={"method": request.method, "path": str(request.url.path), "error": str(e)},
                )
                response = error_response(str(e))
        response.headers.update(CORS_HEADERS)
        return response

    app.include_router(index_router)
    return app


app = create_app()
