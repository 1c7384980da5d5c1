"""Utilidades para retry con backoff exponencial"""
import asyncio
import logging
from typing import Awaitable, Callable, Type, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation: str = "operation",
) -> T:
    """
    Ejecutar una coroutine con retry y backoff exponencial

    Args:
        func: Función sin argumentos que retorna un awaitable
        max_retries: Número máximo de reintentos (0 = un solo intento)
        initial_delay: Delay inicial en segundos
        max_delay: Delay máximo en segundos
        exponential_base: Base para cálculo exponencial
        exceptions: Excepciones que disparan un reintento; el resto se propaga
        operation: Nombre para los logs

    Returns:
        Resultado de la función
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except exceptions as e:
            if attempt == max_retries:
                logger.error(f"{operation} falló tras {attempt + 1} intentos: {type(e).__name__}: {e}")
                raise
            logger.warning(
                f"{operation} falló (intento {attempt + 1}/{max_retries + 1}): "
                f"{type(e).__name__}: {e}. Reintentando en {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)

    raise RuntimeError("Max retries exceeded")
