from __future__ import annotations
import logging
import random
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo import MongoClient

from .analytics import BackgroundAnalytics, InMemoryAnalyticsSink, MongoAnalyticsSink
from .catalog import LocalValidator, PuzzleCatalog
from .config import Config, get_config
from .dictionary import DictionaryService, load_word_frequencies
from .hint_content import HintCache, ThesaurusHintProvider
from .log import configure_logging
from .managers.game import GameServices, SessionManager
from .managers.session import SessionSettings
from .managers.timer import TimerManager
from .routers.api import router as api_router
from .routers.sockets import register_socket_handlers
from .storage import (
    InMemoryCompletionStore,
    InMemoryIdentityStore,
    InMemorySignupStore,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    MongoCompletionStore,
    MongoIdentityStore,
    MongoSignupStore,
)

logger = logging.getLogger(__name__)


def build_services(cfg=Config, rng: Optional[random.Random] = None) -> GameServices:
    catalog = PuzzleCatalog.load(Path(cfg.CATALOG_PATH) if cfg.CATALOG_PATH else None)
    if cfg.DICTIONARY_PATH:
        # Same letter configurations, answer sets derived from the word list
        dictionary = DictionaryService(load_word_frequencies(Path(cfg.DICTIONARY_PATH)))
        configurations = { pid: catalog.lookup_puzzle(pid).configuration for pid in catalog.ids }
        catalog = PuzzleCatalog.from_dictionary(dictionary, configurations, cfg.ANSWER_CAP)
        logger.info("Derived answer sets for %d puzzles from %s", len(catalog), cfg.DICTIONARY_PATH)

    if cfg.MONGO_URI:
        db = MongoClient(cfg.MONGO_URI)[cfg.MONGO_DB]
        sink = MongoAnalyticsSink(db.wordflower_collection)
        completions = MongoCompletionStore(db.wordflower_collection)
        identities = MongoIdentityStore(db.users)
        signups = MongoSignupStore(db.requests)
        logger.info("Using MongoDB database %s", cfg.MONGO_DB)
    else:
        sink = InMemoryAnalyticsSink()
        completions = InMemoryCompletionStore()
        identities = InMemoryIdentityStore()
        signups = InMemorySignupStore()
        logger.warning("MONGO_URI not configured; analytics and completions are kept in memory")

    snapshots = JsonFileSnapshotStore(cfg.SNAPSHOT_DIR) if cfg.SNAPSHOT_DIR else InMemorySnapshotStore()

    hint_provider = ThesaurusHintProvider(
        cfg.MW_THESAURUS_KEY,
        base_url=cfg.MW_THESAURUS_URL,
        cache=HintCache(cfg.HINT_CACHE_SIZE),
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
    )

    return GameServices(
        catalog=catalog,
        validator=LocalValidator(catalog),
        snapshots=snapshots,
        completions=completions,
        identities=identities,
        sink=sink,
        analytics=BackgroundAnalytics(sink, cfg.ANALYTICS_WORKERS),
        hint_provider=hint_provider,
        timer=TimerManager(cfg.TICK_INTERVAL_SECONDS),
        settings=SessionSettings.from_config(cfg),
        hint_pool_size=cfg.HINT_POOL_SIZE,
        rng=rng or random.Random(),
        signups=signups,
    )


def create_app(services: GameServices):
    """Build the FastAPI app and the Socket.IO server around it."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.timer.shutdown()
        services.analytics.close()

    app = FastAPI(title="Wordflower Server", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    # CORS for REST
    app.add_middleware(
        CORSMiddleware,
        allow_origins=['*'],
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    app.include_router(api_router, prefix='/api')

    sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins='*')
    manager = SessionManager(sio, services)
    register_socket_handlers(sio, manager)
    app.state.sessions = manager
    return app, sio


cfg = get_config()
configure_logging(cfg.LOG_LEVEL, cfg.LOG_DIR)
app, sio = create_app(build_services(cfg))

# Export ASGI app for uvicorn
application = socketio.ASGIApp(sio, other_asgi_app=app)

# For local running: uvicorn wordflower.main:application --reload --host 0.0.0.0 --port 8000
