import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import models
from .config import settings
from .database import engine
from .errors import BookingError
from .routers import booking_router
from .outbox_poller import run_outbox_poller

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Setup logger
logger = logging.getLogger("booking_service")

# Create database tables on startup. Alembic owns the schema in deployed
# environments; this keeps local and test databases usable without it.
models.Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    poller_task = None
    if settings.OUTBOX_POLLER_ENABLED:
        logger.info("Starting outbox poller...")
        poller_task = asyncio.create_task(run_outbox_poller())

    yield  # The application is now running

    # --- Code to run on shutdown ---
    if poller_task is not None:
        logger.info("Shutting down outbox poller...")
        poller_task.cancel()
        try:
            await poller_task
        except asyncio.CancelledError:
            logger.info("Outbox poller task successfully cancelled.")
        except Exception as e:
            logger.error(f"Error during outbox poller shutdown: {e}")


app = FastAPI(
    title="Booking Service API",
    description="Reserves homestays and guides without double-booking them.",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


app.include_router(booking_router.router)


@app.get("/")
def read_root():
    return {"message": "Welcome to the Booking Service"}
