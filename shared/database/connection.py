"""Engine async y fábrica de sesiones"""
from functools import wraps
from typing import AsyncGenerator, Optional
import asyncio
import logging

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.config import get_settings
from shared.errors import UpstreamError

logger = logging.getLogger(__name__)

Base = declarative_base()

# Se inicializan en el lifespan de la API o al inicio de cada tarea Celery
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None

_ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "postgresql+psycopg://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(database_url: str) -> str:
    """Reescribir la URL al driver async (asyncpg / aiosqlite)"""
    if database_url.startswith("postgres") and "?" in database_url:
        # sslmode y similares no los entiende asyncpg
        database_url = database_url.split("?", 1)[0]

    for prefix, async_prefix in _ASYNC_DRIVERS.items():
        if database_url.startswith(prefix):
            return async_prefix + database_url[len(prefix):]
    return database_url


def _safe_url(url: str) -> str:
    return url.split("@", 1)[1] if "@" in url else url


async def init_db(database_url: Optional[str] = None):
    global engine, async_session_maker

    if engine is not None:
        logger.warning("Engine de base de datos ya inicializado")
        return

    settings = get_settings()
    url = to_async_url(database_url or settings.DATABASE_URL)
    logger.info(f"Conectando a base de datos: {_safe_url(url)}")

    options = {}
    if url.startswith("postgresql"):
        options = {
            "pool_pre_ping": True,
            "pool_recycle": 300,
            "pool_timeout": 30,
            "pool_size": 5,
            "max_overflow": 10,
        }

    engine = create_async_engine(url, echo=settings.APP_DEBUG, **options)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_all():
    """Crear tablas (tests y desarrollo local). En producción usar migraciones."""
    from shared.database import models  # noqa: F401 registra los modelos en Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session_maker() -> async_sessionmaker:
    if async_session_maker is None:
        raise RuntimeError("Base de datos no inicializada: falta llamar a init_db()")
    return async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency: una sesión por request, con rollback si el handler falla"""
    async with get_session_maker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def close_db():
    global engine, async_session_maker
    if engine is None:
        return
    await engine.dispose()
    engine = None
    async_session_maker = None
    logger.info("Conexiones a base de datos cerradas")


def storage_unavailable(exc: BaseException) -> bool:
    """Caída o timeout de la base de datos (no un error de datos como IntegrityError)"""
    if isinstance(exc, DBAPIError):
        return isinstance(exc, OperationalError) or exc.connection_invalidated
    return isinstance(exc, (OSError, asyncio.TimeoutError))


def translate_storage_errors(func):
    """Convierte una caída de la base de datos en UpstreamError (503, reintentable)"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (DBAPIError, OSError, asyncio.TimeoutError) as e:
            if not storage_unavailable(e):
                raise
            logger.error(f"Base de datos no disponible en {func.__name__}: {e}")
            raise UpstreamError("Base de datos no disponible, reintenta") from e
    return wrapper
