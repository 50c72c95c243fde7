import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.db.init_db import create_database
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.core.config import settings
from app.core.exceptions import BookingError
from app.api.v1.router import api_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def run_maintenance() -> None:
    """Release expired seat holds and expire ended promotions."""
    from app.services.promotions import expire_sweep
    from app.services.reservations import release_expired_holds

    db = SessionLocal()
    try:
        release_expired_holds(db)
        expire_sweep(db)
    finally:
        db.close()


async def _maintenance_loop(interval: int) -> None:
    while True:
        try:
            await asyncio.to_thread(run_maintenance)
        except Exception:
            logger.exception("Error during maintenance sweep.")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    # Sweeps also run lazily on every request that reads holds or promotions
    task = None
    if settings.MAINTENANCE_SWEEP_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(_maintenance_loop(settings.MAINTENANCE_SWEEP_INTERVAL_SECONDS))
    yield

    # Shutdown: cancel background task
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"status": "ok", "service": settings.PROJECT_NAME}
