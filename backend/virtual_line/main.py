import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .exceptions import VirtualLineError
from .redis_client import redis_client
from .routers import facility, reservations, schedule, slots

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Virtual Line API (SQLite)")

app.include_router(schedule.router)
app.include_router(slots.router)
app.include_router(reservations.router)
app.include_router(facility.router)


@app.exception_handler(VirtualLineError)
async def virtual_line_error_handler(request: Request, exc: VirtualLineError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
def health():
    try:
        redis_ok = bool(redis_client.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        redis_ok = False
    return {"status": "ok", "redis": redis_ok}
