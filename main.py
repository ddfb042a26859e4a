import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
import yaml
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from portfolio.document_store import (
    DEFAULT_CURRENT_FILE,
    DEFAULT_LEGACY_FILE,
    DEFAULT_SNAPSHOT_PREFIX,
    DEFAULT_SNAPSHOT_SUFFIX,
    DocumentParseError,
    DocumentStore,
)
from portfolio.freshness_cache import RATE_LIMIT_WINDOW, FreshnessCache
from portfolio.models import PortfolioData, decode_document, empty_document
from portfolio.runtime import StoreRuntime

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent


def build_store(settings: dict) -> DocumentStore:
    """Create the DocumentStore described by the ``storage`` section."""
    storage = settings.get("storage", {})
    return DocumentStore(
        data_dir=Path(storage.get("data_dir", ".")),
        current_file=storage.get("current_file", DEFAULT_CURRENT_FILE),
        snapshot_prefix=storage.get("snapshot_prefix", DEFAULT_SNAPSHOT_PREFIX),
        snapshot_suffix=storage.get("snapshot_suffix", DEFAULT_SNAPSHOT_SUFFIX),
        legacy_file=storage.get("legacy_file", DEFAULT_LEGACY_FILE),
        decode=decode_document,
    )


def build_cache(store: DocumentStore, settings: dict) -> FreshnessCache:
    cache_settings = settings.get("cache", {})
    return FreshnessCache(
        store=store,
        default_factory=empty_document,
        rate_limit=cache_settings.get("rate_limit_seconds", RATE_LIMIT_WINDOW),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    # Startup
    settings = load_settings()
    runtime = StoreRuntime(
        max_workers=settings.get("runtime", {}).get("thread_pool_workers", 4)
    )
    store = build_store(settings)

    # Store in app.state for access in handlers
    app.state.settings = settings
    app.state.runtime = runtime
    app.state.portfolio_cache = build_cache(store, settings)
    logger.info("Serving portfolio from %s", store.data_dir.resolve())

    yield

    # Shutdown
    runtime.shutdown()


app = FastAPI(title="Portfolio Server", lifespan=lifespan)
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    """Render the portfolio page shell."""
    return templates.TemplateResponse(request, "base.html")


@app.get("/api/portfolio")
async def get_portfolio(request: Request):
    """
    Return the current portfolio document.

    Raises:
        HTTPException: 500 if the document cannot be loaded from disk
    """
    cache = request.app.state.portfolio_cache
    try:
        return await request.app.state.runtime.run(cache.get)
    except (OSError, DocumentParseError) as e:
        logger.error("Error loading portfolio: %s", e)
        raise HTTPException(
            status_code=500, detail=f"Error loading portfolio: {e}"
        ) from e


@app.post("/api/portfolio")
async def save_portfolio(request: Request):
    """
    Replace the portfolio document.

    The body must be a JSON portfolio document. It is validated before
    anything is written.

    Returns:
        {"status": "saved"} on success

    Raises:
        HTTPException: 400 on malformed input, 500 if persisting fails
    """
    body = await request.body()
    try:
        data = PortfolioData.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON") from e

    cache = request.app.state.portfolio_cache
    try:
        await request.app.state.runtime.run(cache.put, data.to_document())
    except OSError as e:
        logger.error("Error saving portfolio: %s", e)
        raise HTTPException(status_code=500, detail="Error saving file") from e
    return {"status": "saved"}


def load_settings():
    """Load settings from config/settings.yaml."""
    settings_path = BASE_DIR / "config" / "settings.yaml"
    with open(settings_path) as f:
        return yaml.safe_load(f) or {}


if __name__ == "__main__":
    settings = load_settings()
    server = settings.get("server", {})
    uvicorn.run(
        app,
        host=server.get("host", "0.0.0.0"),
        port=server.get("port", 8080),
        log_level=server.get("log_level", "info"),
    )
