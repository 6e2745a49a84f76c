"""
Redirect server for SURL Platform.

Responsibilities:
    - Resolve `GET {base path}{external id}` to a 302 redirect or a 404
    - Optionally reject requests addressed to another host (strict mode)
    - Keep a result cache in front of the shard backends and flush it when
      an invalidation source reports a data change

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - Backends, cache and invalidation sources are built from
      `surl_platform.config` unless injected.
    - Every kind of miss answers the same generic 404; backend failures answer 500.

Run:
    uvicorn main:app --port 8080
    surl-server --port 8080
"""

import argparse
import contextlib
import logging
from typing import Iterable, List, Optional
from urllib.parse import urlparse, ParseResult

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from pydantic import BaseModel

from surl_platform.cache.cache import ResultCache
from surl_platform.cache.invalidation import (
    InvalidationSource,
    PollingInvalidationSource,
    PostgresNotifySource,
)
from surl_platform.config import load_settings
from surl_platform.errors import ConfigurationError, StorageError
from surl_platform.router.resolver import Resolver
from surl_platform.router.shard_router import ShardRouter
from surl_platform.storage.base import BaseBackend
from surl_platform.storage.storage_factory import get_backends

log = logging.getLogger("surl")

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class HealthOut(BaseModel):
    """Liveness payload."""
    status: str
    shards: List[int]
    cache: bool


def parse_base_url(base_url: str) -> ParseResult:
    """
    Validate the base URL short links live under; its path always ends with "/".

    Raises:
        ConfigurationError: not an absolute URL.
    """
    parsed = urlparse(base_url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigurationError(f"base URL is not a full url: {base_url!r}")
    path = parsed.path if parsed.path.endswith("/") else parsed.path + "/"
    return parsed._replace(path=path)


def _split_path(path: str):
    """Split into (directory with trailing '/', final segment)."""
    idx = path.rfind("/")
    return path[: idx + 1], path[idx + 1:]


def build_invalidation_sources(mode: str, backends: Iterable[BaseBackend]) -> List[InvalidationSource]:
    """Invalidation sources for the configured mode ("none", "postgres" or "poll")."""
    cfg = load_settings()
    backends = list(backends)
    if mode == "none":
        return []
    if mode == "postgres":
        if not cfg.DB_DSNS:
            raise ConfigurationError("postgres invalidation needs SURL_DB_DSNS")
        return [PostgresNotifySource(dsn, channel=cfg.NOTIFY_CHANNEL) for dsn in cfg.DB_DSNS]
    if mode == "poll":
        probe = lambda: tuple(bk.data_version() for bk in backends)  # noqa: E731
        return [PollingInvalidationSource(probe, interval=cfg.POLL_INTERVAL)]
    raise ConfigurationError(f"Unknown invalidation mode: {mode!r}")


def create_app(
    backends: Optional[Iterable[BaseBackend]] = None,
    base_url: Optional[str] = None,
    strict: Optional[bool] = None,
    cache: Optional[ResultCache] = None,
    cache_enabled: Optional[bool] = None,
    invalidation: Optional[List[InvalidationSource]] = None,
) -> FastAPI:
    """
    Factory function to build and configure a new redirect app.

    Args:
        backends: shard backends; built from config when omitted.
        base_url: base URL; defaults to SURL_BASE_URL.
        strict: reject other Host headers; defaults to SURL_STRICT_HOST.
        cache: cache instance to use (implies cache_enabled).
        cache_enabled: build a cache from config; defaults to SURL_CACHE_ENABLED.
        invalidation: sources that flush the cache; built from SURL_INVALIDATION when omitted.

    Raises:
        ConfigurationError: duplicate shard numbers, bad base URL, bad modes.
    """
    cfg = load_settings()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=getattr(logging, cfg.LOG_LEVEL, logging.INFO))

    base = parse_base_url(base_url or cfg.BASE_URL)
    strict = cfg.STRICT_HOST if strict is None else strict
    backends = list(get_backends() if backends is None else backends)
    router = ShardRouter(backends)

    if cache is None and (cfg.CACHE_ENABLED if cache_enabled is None else cache_enabled):
        cache = ResultCache(default_ttl=cfg.CACHE_TTL, max_entries=cfg.CACHE_MAX_ENTRIES)
    sources: List[InvalidationSource] = []
    if cache is not None:
        sources = build_invalidation_sources(cfg.INVALIDATION, backends) if invalidation is None else list(invalidation)
        for src in sources:
            cache.subscribe(src)
    resolver = Resolver(router, cache=cache)

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        for src in sources:
            src.start()
        try:
            yield
        finally:
            for src in sources:
                src.stop()
            router.close()

    app = FastAPI(
        title="SURL Platform",
        description="Sharded short-link redirect service",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.resolver = resolver
    app.state.invalidation = sources

    log.info("redirect server for %s (strict=%s, cache=%s, shards=%s)",
             base.geturl(), strict, cache is not None, sorted(router.shards))

    def _not_found() -> Response:
        return PlainTextResponse("not found", status_code=404)

    @app.get("/health_surl", response_model=HealthOut)
    def health_surl() -> HealthOut:
        return HealthOut(status="ok", shards=sorted(router.shards), cache=cache is not None)

    @app.api_route("/{full_path:path}", methods=_ALL_METHODS)
    def redirect(full_path: str, request: Request) -> Response:
        """
        Redirect a short link.

        Returns:
            302 with Location for a live entry; 404 for every kind of miss;
            500 when the owning backend fails.
        """
        if request.method != "GET":
            return _not_found()
        if strict and request.headers.get("host", "") != base.netloc:
            return _not_found()
        directory, external_id = _split_path(request.url.path)
        if directory != base.path or not external_id:
            return _not_found()

        try:
            outcome = resolver.resolve(external_id)
        except StorageError as exc:
            log.error("failed on querying %s: %s", external_id, exc)
            return PlainTextResponse("temporary error", status_code=500)

        if not outcome.found:
            return _not_found()
        return RedirectResponse(url=outcome.url, status_code=302)

    return app


def run(argv: Optional[List[str]] = None) -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    ap = argparse.ArgumentParser(description="SURL redirect server")
    ap.add_argument("--host", default="0.0.0.0")
    ap.add_argument("-p", "--port", type=int, default=8080, help="listen port")
    args = ap.parse_args(argv)
    # the module-level app, built once at import
    uvicorn.run(app, host=args.host, port=args.port)


# `uvicorn main:app` and `from main import app` keep working.
app = create_app()

if __name__ == "__main__":
    run()
