import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from helpdesk.core.config import settings
from helpdesk.db.session import create_tables
from helpdesk.services.change_feed import RedisChangeFeed
from helpdesk.services.inbox_sessions import InboxSessionRegistry
from helpdesk.services.sql_collection import SqlAlchemyCollection
from helpdesk.api.api_v1.endpoints import inbox as inbox_router

# Setup logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def default_collection() -> SqlAlchemyCollection:
    return SqlAlchemyCollection(change_feed=RedisChangeFeed())


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        create_tables()
    if not hasattr(app.state, "inbox_registry"):
        app.state.inbox_registry = InboxSessionRegistry(default_collection)
    registry = app.state.inbox_registry
    sweeper = asyncio.create_task(registry.sweep(settings.INBOX_SESSION_SWEEP_SECONDS))
    logger.info(f"{settings.PROJECT_NAME} {settings.PROJECT_VERSION} started")
    yield
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    await registry.close_all()
    logger.info(f"{settings.PROJECT_NAME} stopped")


# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description="Multi-tenant helpdesk inbox API with live ticket views",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Setup CORS
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).strip() for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

# Include routers
app.include_router(inbox_router.router, prefix="/api/v1/inbox")


# Root endpoints
@app.get("/", tags=["Root"])
async def root():
    """Welcome endpoint"""
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "docs": "/api/docs",
        "version": settings.PROJECT_VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "helpdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
