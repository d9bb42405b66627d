# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from electzone.config import CORS_ORIGINS, DUMMY_DB_PATH, LOG_LEVEL, STORE_BACKEND
from electzone.errors import StoreError
from electzone.realtime import ChangeFeed, feed as default_feed
from electzone.routes.admin_routes import router as admin_router
from electzone.routes.auth_routes import router as auth_router
from electzone.routes.election_routes import router as election_router
from electzone.routes.vote_routes import vote_router
from electzone.storage import JsonStore
from electzone.storage_mongo import MongoStore

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


def build_store(feed: ChangeFeed):
    if STORE_BACKEND == "json":
        logger.info(f"Using JSON store at {DUMMY_DB_PATH}")
        return JsonStore(DUMMY_DB_PATH, feed=feed)
    return MongoStore(feed=feed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.store is None:
        app.state.store = build_store(app.state.feed)
        if isinstance(app.state.store, MongoStore):
            await app.state.store.connect()
    yield
    await app.state.store.close()


def create_app(store=None, feed: ChangeFeed = None) -> FastAPI:
    """
    Build the API. Pass a store to skip backend selection (tests, scripts);
    otherwise STORE_BACKEND decides at startup.
    """
    app = FastAPI(title="ElectZone - School Election API", lifespan=lifespan)
    app.state.feed = feed or getattr(store, "feed", None) or default_feed
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store error on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Election data is temporarily unavailable."})

    app.include_router(auth_router)
    app.include_router(election_router)
    app.include_router(vote_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["General"])
    async def health_check():
        return {"status": "healthy", "store": type(app.state.store).__name__}

    @app.get("/", tags=["Root"])
    def read_root():
        return {"message": "Welcome to the ElectZone API"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    return app


app = create_app()
