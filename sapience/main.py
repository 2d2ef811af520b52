from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from sapience.core.config import settings
from sapience.core.database import engine, Base, SessionLocal
from sapience.core.logging_config import (
    setup_logging,
    CorrelationIdMiddleware,
    log_pipeline_event,
)
from sapience.api.endpoints import (
    feeds,
    articles,
    categories,
    recommendations,
    profile,
    actions,
    auth,
)
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.bootstrap import ensure_default_user
from sapience.services.scheduler import PipelineScheduler, SchedulerConfig
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import sapience.models  # noqa: F401  registers every table on Base.metadata
import logging

# Configure structured JSON logging
pipeline_logger = setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Starting Sapience application...")

    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    if settings.BOOTSTRAP_DEFAULT_USER:
        db = SessionLocal()
        try:
            ensure_default_user(db, settings)
        finally:
            db.close()

    background = BackgroundTaskSet("backfill")
    app.state.background = background

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = PipelineScheduler(
            SchedulerConfig.from_settings(), background=background
        )
        scheduler.start()

    log_pipeline_event(
        "app.startup",
        f"Sapience started (scheduler={'on' if scheduler else 'off'})",
        event_category="system",
        debug=settings.DEBUG,
        dev_mode=settings.DEV_MODE,
    )

    yield

    # Shutdown
    logger.info("Shutting down Sapience application...")
    if scheduler is not None:
        scheduler.shutdown()
    await background.wait(timeout=10)
    await background.cancel_all()


app = FastAPI(
    title="Sapience - Feed Reader with Recommendations",
    description="Feed aggregator with LLM summaries and personalized recommendations",
    version="1.0.0",
    lifespan=lifespan,
)

# Add correlation ID middleware (first, so all logs have correlation IDs)
app.add_middleware(CorrelationIdMiddleware)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(feeds.router, prefix="/api/feeds", tags=["feeds"])
app.include_router(articles.router, prefix="/api/articles", tags=["articles"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(
    recommendations.router, prefix="/api/recommendations", tags=["recommendations"]
)
app.include_router(profile.router, prefix="/api/profile", tags=["profile"])
app.include_router(actions.router, prefix="/api/actions", tags=["actions"])


@app.get("/")
def root():
    return {
        "name": "Sapience",
        "version": "1.0.0",
        "description": "Feed reader with personalized recommendations",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
