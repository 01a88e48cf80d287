import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from bakeoff.core.config import get_settings
from bakeoff.core.database import engine, Base
from bakeoff.api import auth, seasons, contestants, episodes, picks, scoring, events
from bakeoff.services.errors import BakeOffError

# Import all models so Base.metadata is populated for create_all
import bakeoff.models.models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # create_all is idempotent; existing tables are left alone
    logger.info("Starting up, creating database tables...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully.")
    except Exception as e:
        logger.error("Error creating database tables: %s", e)
        # Let the app start so /health still answers
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Bake Off prediction league: weekly Star Baker and elimination picks, finalist picks, scoring and leaderboards.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BakeOffError)
async def bakeoff_error_handler(request: Request, exc: BakeOffError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(auth.router)
app.include_router(seasons.router)
app.include_router(contestants.router)
app.include_router(episodes.router)
app.include_router(picks.router)
app.include_router(scoring.router)
app.include_router(events.router)


@app.get("/health")
async def health():
    return {"status": "healthy"}
