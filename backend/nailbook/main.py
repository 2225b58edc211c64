import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .config import settings
from .database import engine
from .models.entities import Base
from .redis_client import redis_client
from .routers import blocked_dates, bookings, cron, google, slots
from .services.errors import BookingError
from .services.events import EventEmitter

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.events = EventEmitter(redis_client)
    app.state.events.start()
    logger.info("nailbook started")
    yield
    app.state.events.stop()


app = FastAPI(title="Nailbook Booking API", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message, **exc.details},
    )


app.include_router(slots.router)
app.include_router(blocked_dates.router)
app.include_router(bookings.router)
app.include_router(google.router)
app.include_router(cron.router)


@app.get("/health")
def health():
    try:
        redis_ok = redis_client.ping()
    except RedisError:
        redis_ok = False
    return {"status": "ok", "redis": redis_ok}
