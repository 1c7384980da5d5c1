"""
Rate limiting con slowapi sobre Redis.

El endpoint de validación en puerta es el blanco natural para probar firmas
por fuerza bruta; cada scanner tiene su propio cupo.
"""
import hashlib
import logging
import os

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

RATE_LIMITS = {
    # Un scanner valida un ticket cada pocos segundos
    "validation": "60/minute",
    # El cliente reintenta la emisión tras timeouts de Horizon
    "issue": "20/minute",
    "default": "30/minute",
}


def client_ip(request: Request) -> str:
    """IP del cliente detrás del load balancer"""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address(request)


def limit_key(request: Request) -> str:
    """IP + hash corto del token; nunca el token en claro"""
    ip = client_ip(request)
    authorization = request.headers.get("Authorization", "")
    if not authorization.startswith("Bearer "):
        return ip
    digest = hashlib.sha256(authorization.encode()).hexdigest()[:12]
    return f"{ip}:{digest}"


limiter = Limiter(
    key_func=limit_key,
    storage_uri=REDIS_URL,
    strategy="fixed-window",
    headers_enabled=False,  # incompatible con response_model de FastAPI
    enabled=RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(f"Rate limit excedido: {client_ip(request)} en {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiadas solicitudes, espera antes de reintentar.",
            "retryable": True,
        },
        headers={"Retry-After": "60"},
    )
