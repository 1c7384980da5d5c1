"""Lumentix API: emisión, transferencia y validación de tickets pagados en Stellar"""
from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import OperationalError

from shared.config import get_settings
from shared.database.connection import close_db, init_db
from shared.errors import TicketingError, UpstreamError
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from services.audit.routes.audit import router as audit_router
from services.notifications.services.ticket_notifier import TicketNotifier
from services.stellar.services.horizon_client import HorizonClient
from services.ticketing.routes.tickets import router as tickets_router
from services.ticketing.services.signing_service import build_signer

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Sin secret de firma válido no se arranca: ValueError aborta el startup
    app.state.signer = build_signer()
    app.state.horizon = HorizonClient(
        settings.HORIZON_URL,
        timeout=settings.HORIZON_TIMEOUT_SECONDS,
        max_retries=settings.HORIZON_MAX_RETRIES,
    )
    app.state.notifier = TicketNotifier()
    await init_db()
    logger.info(f"Lumentix API lista (Horizon: {settings.HORIZON_URL})")

    yield

    await app.state.notifier.drain()
    await app.state.horizon.aclose()
    await close_db()
    logger.info("Lumentix API detenida")


app = FastAPI(
    title="Lumentix API",
    description="Emisión y validación de tickets de eventos pagados en Stellar",
    version="1.0.0",
    lifespan=lifespan,
)


def _cors_origins():
    if os.getenv("APP_ENV", "development") == "development":
        return ["*"]
    return [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]


cors_origins = _cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # credentials no se permite junto con "*"
    allow_credentials=cors_origins != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=3600,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(TicketingError)
async def ticketing_error_handler(request: Request, exc: TicketingError):
    if exc.retryable:
        logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
async def storage_error_handler(request: Request, exc: OperationalError):
    """Caídas de la base de datos fuera de TicketService (p. ej. rutas de auditoría)"""
    logger.error(f"{request.method} {request.url.path} -> base de datos no disponible: {exc}")
    error = UpstreamError("Base de datos no disponible, reintenta")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


app.include_router(tickets_router, prefix="/api/v1/tickets", tags=["tickets"])
app.include_router(audit_router, prefix="/api/v1/admin/audit", tags=["audit"])


@app.get("/health")
async def health():
    return {"status": "ok", "service": "lumentix-api"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=get_settings().APP_DEBUG)
