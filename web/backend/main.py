from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from radio_atlas.core.config import load_config
from radio_atlas.core.errors import BlockedHostError, UpstreamError, ValidationError
from radio_atlas.core.http import create_client, create_push_client
from radio_atlas.core.output import setup_from_config
from radio_atlas.domain.radio.catalog import CatalogCache
from radio_atlas.domain.radio.push_channel import NightridePushChannel
from radio_atlas.domain.radio.resolver import NowPlayingResolver

config = load_config()

EXPOSED_HEADERS = ["Content-Length", "Content-Range", "Accept-Ranges", "Content-Type"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_from_config(config)
    client = create_client(config)
    app.state.config = config
    app.state.client = client
    app.state.resolver = NowPlayingResolver(client, icy_timeout=config.metadata.icy_timeout)
    app.state.catalog = CatalogCache(client, ttl_seconds=config.catalog.ttl_seconds)
    # Event streams idle between tracks, so they get a client without a read timeout
    push_client = create_push_client(config)
    app.state.push_channel = (
        NightridePushChannel(push_client) if config.metadata.push_channel else None
    )
    logger.info(
        f"Relay ready (public url: {config.server.public_url or 'request base'}, "
        f"extractor: {config.extractor.url or 'local yt-dlp'})"
    )
    try:
        yield
    finally:
        if app.state.push_channel is not None:
            await app.state.push_channel.aclose()
        await push_client.aclose()
        await client.aclose()
        logger.info("Relay stopped")


app = FastAPI(title="Radio Atlas Relay API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.server.allowed_origins,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Range"],
    expose_headers=EXPOSED_HEADERS,
)


@app.exception_handler(BlockedHostError)
async def blocked_host_handler(request: Request, exc: BlockedHostError):
    logger.info(f"Rejected blocked host {exc.host} on {request.url.path}")
    return JSONResponse(status_code=403, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.warning(f"Upstream failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"error": str(exc)})


# Include routers
from web.backend.routers import catalog, extract, fetch, metadata, stream

app.include_router(stream.router, tags=["stream"])
app.include_router(metadata.router, tags=["metadata"])
app.include_router(catalog.router, tags=["catalog"])
app.include_router(extract.router, tags=["extract"])
app.include_router(fetch.router, tags=["fetch"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
