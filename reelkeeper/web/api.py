"""Read-only REST API over the media catalog.

Serves list, detail and stats endpoints for the frontend, health and
Prometheus metrics for operations, and the Telegram webhook endpoint when
the bot runs in webhook mode. Every error body is ``{"error": "..."}``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..db.catalog import CatalogError
from ..metrics.registry import REGISTRY
from ..runtime.config import AppConfig


logger = logging.getLogger("reelkeeper.api")

API_VERSION = "0.1.0"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _page(page: int, limit: Optional[int], default_limit: int, max_limit: int) -> Dict[str, int]:
    size = min(limit or default_limit, max_limit)
    return {"page": page, "limit": size, "skip": (page - 1) * size}


def group_seasons(series: Dict[str, Any], episodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest episodes under their season, both ordered by number."""
    by_season: Dict[int, List[Dict[str, Any]]] = {n: [] for n in series.get("seasons") or []}
    for ep in episodes:
        by_season.setdefault(ep["seasonNumber"], []).append(ep)
    return [
        {
            "seasonNumber": number,
            "episodes": sorted(by_season[number], key=lambda e: e["episodeNumber"]),
        }
        for number in sorted(by_season)
    ]


def create_app(store, config: Optional[AppConfig] = None, bot=None) -> FastAPI:
    """Build the API application.

    Args:
        store: catalog store serving the read endpoints.
        config: application config; page sizes and webhook settings come from it.
        bot: running `ReelkeeperBotService`; the webhook route is mounted when
            it is given and runs in webhook mode.
    """
    default_limit = config.api_default_page_size if config else 20
    max_limit = config.api_max_page_size if config else 100

    app = FastAPI(title="Reelkeeper API", version=API_VERSION)
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error(400, f"Invalid request: {problems}")

    @app.exception_handler(CatalogError)
    async def _catalog_error(request: Request, exc: CatalogError) -> JSONResponse:
        logger.error("catalog request failed", extra={"path": request.url.path, "error": str(exc)})
        return _error(500, "Failed to query catalog")

    @app.get("/health")
    def health() -> JSONResponse:
        status = {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "ok",
        }
        try:
            store.ping()
        except CatalogError as e:
            status.update({"status": "degraded", "database": "unavailable", "error": str(e)})
            return JSONResponse(status_code=503, content=status)
        return JSONResponse(content=status)

    @app.get("/api/movies")
    def list_movies(
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
    ) -> Dict[str, Any]:
        p = _page(page, limit, default_limit, max_limit)
        items = store.list_movies(search=search, skip=p["skip"], limit=p["limit"])
        return {"items": items, "page": p["page"], "limit": p["limit"], "total": store.count_movies(search)}

    @app.get("/api/series")
    def list_series(
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
    ) -> Dict[str, Any]:
        p = _page(page, limit, default_limit, max_limit)
        items = store.list_series(search=search, skip=p["skip"], limit=p["limit"])
        return {"items": items, "page": p["page"], "limit": p["limit"], "total": store.count_series(search)}

    @app.get("/api/media")
    def list_media(
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
    ) -> Dict[str, Any]:
        """Movies and series merged newest first, each tagged with ``kind``."""
        p = _page(page, limit, default_limit, max_limit)
        window = p["skip"] + p["limit"]
        merged = [dict(m, kind="movie") for m in store.list_movies(search=search, limit=window)]
        merged += [dict(s, kind="series") for s in store.list_series(search=search, limit=window)]
        merged.sort(key=lambda item: (item.get("addedAt") or "", item["id"]), reverse=True)
        total = store.count_movies(search) + store.count_series(search)
        return {
            "items": merged[p["skip"]:window],
            "page": p["page"],
            "limit": p["limit"],
            "total": total,
        }

    @app.get("/api/series/{series_id}")
    def get_series(series_id: str):
        series = store.get_series(series_id)
        if not series:
            return _error(404, "Series not found")
        episodes = store.list_episodes(series_id)
        return dict(series, seasons=group_seasons(series, episodes))

    @app.get("/api/stats")
    def stats() -> Dict[str, int]:
        return store.stats()

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(content=generate_latest(REGISTRY).decode("utf-8"))

    @app.get("/")
    async def root() -> Dict[str, Any]:
        return {
            "service": "Reelkeeper API",
            "version": API_VERSION,
            "endpoints": {
                "movies": "/api/movies",
                "series": "/api/series",
                "media": "/api/media",
                "stats": "/api/stats",
                "health": "/health",
                "metrics": "/metrics",
            },
        }

    if bot is not None and config is not None and config.telegram_mode == "webhook":

        @app.post(config.webhook_path)
        async def telegram_webhook(request: Request) -> JSONResponse:
            try:
                payload = await request.json()
            except ValueError:
                return _error(400, "Invalid JSON body")
            accepted = await bot.process_webhook(
                payload, request.headers.get("X-Telegram-Bot-Api-Secret-Token")
            )
            if not accepted:
                return _error(403, "Invalid secret token")
            return JSONResponse(content={"ok": True})

    return app
