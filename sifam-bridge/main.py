"""
SIFAM proxy: FastAPI service.
Fronts the SIFAM API with an injected api key and a 5-minute in-memory cache,
and relays Shopify orders/paid webhooks as SIFAM dropshipping orders.
"""

import logging
import re
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from cache import TTLCache
from config import Settings, configure_logging, settings
from errors import BridgeError, UpstreamRejection
from orders import build_sifam_order
from sifam_client import SifamApi

logger = logging.getLogger(__name__)


def origin_allowed(origin: str, patterns: list[str]) -> bool:
    return any(re.search(p, origin) for p in patterns)


def _as_fullmatch(patterns: list[str]) -> str:
    """Starlette full-matches allow_origin_regex; ours are search patterns."""
    return "|".join(f".*?(?:{p}).*" for p in patterns)


def _error_payload(exc: BridgeError) -> dict:
    if isinstance(exc, UpstreamRejection) and exc.body not in (None, ""):
        return {"error": exc.body}
    return {"error": str(exc)}


def _cached_get(request: Request, url: str):
    cache: TTLCache = request.app.state.cache
    api: SifamApi = request.app.state.api
    try:
        return cache.get_or_fetch(url, lambda: api.get_json(url))
    except UpstreamRejection as exc:
        if exc.status != 404:
            logger.warning("upstream GET failed: %s", exc)
            return JSONResponse(status_code=502, content=_error_payload(exc))
        # Unknown reference stays a 404 so callers read it as absent.
        return JSONResponse(status_code=404, content=_error_payload(exc))
    except BridgeError as exc:
        logger.warning("upstream GET failed: %s", exc)
        return JSONResponse(status_code=502, content=_error_payload(exc))


def _post_order(request: Request, payload: dict):
    api: SifamApi = request.app.state.api
    try:
        status, body = api.post_order(payload)
    except UpstreamRejection as exc:
        logger.warning("SIFAM order rejected: %s", exc)
        return JSONResponse(status_code=exc.status or 502, content=_error_payload(exc))
    except BridgeError as exc:
        logger.warning("SIFAM order failed: %s", exc)
        return JSONResponse(status_code=502, content=_error_payload(exc))
    return JSONResponse(status_code=status, content=body)


async def _json_body(request: Request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    return data


def create_app(cfg: Settings | None = None, cache: TTLCache | None = None, api: SifamApi | None = None) -> FastAPI:
    cfg = cfg or settings
    app = FastAPI(title="SIFAM proxy")
    app.state.settings = cfg
    app.state.cache = cache if cache is not None else TTLCache(ttl=cfg.CACHE_TTL_SECONDS)
    app.state.api = api or SifamApi(cfg.SIFAM_API_BASE, cfg.SIFAM_API_KEY)
    patterns = list(cfg.CORS_ORIGIN_PATTERNS)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=_as_fullmatch(patterns),
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def origin_guard(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and not origin_allowed(origin, patterns):
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})
        return await call_next(request)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/familles")
    def familles(request: Request):
        return _cached_get(request, request.app.state.api.familles_url())

    @app.get("/catalogue")
    def catalogue(request: Request, fam: str = "ALL"):
        return _cached_get(request, request.app.state.api.catalogue_url(fam))

    @app.get("/stock/{ref:path}")
    def stock(request: Request, ref: str):
        return _cached_get(request, request.app.state.api.stock_url(ref))

    @app.get("/photos/{ref:path}")
    def photos(request: Request, ref: str):
        return _cached_get(request, request.app.state.api.photos_url(ref))

    @app.get("/suivi/{refcmd}")
    def suivi(request: Request, refcmd: str):
        return _cached_get(request, request.app.state.api.order_status_url(refcmd))

    @app.post("/commande")
    async def commande(request: Request):
        payload = await _json_body(request)
        return await run_in_threadpool(_post_order, request, payload)

    @app.post("/relay/order-paid")
    async def relay_order_paid(request: Request):
        order = await _json_body(request)
        cfg_: Settings = request.app.state.settings
        payload = build_sifam_order(order, datetime.now(), cfg_.ORDER_CLIENT_CODE, cfg_.ORDER_PREFIX)
        logger.info("relaying Shopify order %s (%d lines)", payload["ReferenceCommande"], len(payload["Articles"]))
        return await run_in_threadpool(_post_order, request, payload)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
