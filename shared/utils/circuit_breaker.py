"""Circuit breaker para proteger servicios externos"""
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar
import logging
import time

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Circuit is open, fail fast
    HALF_OPEN = "half_open"  # Testing if service is back


class CircuitOpenError(Exception):
    """El circuito está abierto; no se llama al servicio"""


class CircuitBreaker:
    """Circuit breaker pattern implementation"""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        expected_exceptions: Tuple[Type[Exception], ...] = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exceptions = expected_exceptions
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Ejecutar coroutine con circuit breaker"""
        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                logger.info(f"Circuit breaker {self.name}: HALF_OPEN, probando servicio")
                self.state = CircuitState.HALF_OPEN
            else:
                raise CircuitOpenError(f"Circuit breaker {self.name} is OPEN")

        try:
            result = await func()
        except self.expected_exceptions:
            self._on_failure()
            raise
        except Exception:
            # El servicio respondió; el error es del caller (p. ej. 404), no de disponibilidad
            self._on_success()
            raise

        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        """Verificar si se debe intentar resetear el circuito"""
        if self.last_failure_time is None:
            return True
        return self._clock() - self.last_failure_time >= self.recovery_timeout

    def _on_success(self):
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit breaker {self.name}: CLOSED")
            self.state = CircuitState.CLOSED

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(f"Circuit breaker {self.name}: OPEN tras {self.failure_count} fallos")
            self.state = CircuitState.OPEN
