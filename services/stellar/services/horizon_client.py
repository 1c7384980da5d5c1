"""Cliente de Stellar Horizon para consultar transacciones de liquidación"""
from dataclasses import dataclass
from typing import Optional
import logging

import httpx

from shared.errors import InvalidStateError, UpstreamError
from shared.utils.circuit_breaker import CircuitBreaker, CircuitOpenError
from shared.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OracleTransaction:
    """Vista mínima de una transacción on-chain"""
    hash: str
    memo: Optional[str] = None
    memo_type: Optional[str] = None
    successful: bool = True


class _HorizonServerError(Exception):
    """Respuesta 5xx o 429 de Horizon (transitoria)"""


class HorizonClient:
    """
    Consulta GET /transactions/{hash} en Horizon.

    - 404: la transacción no existe en el ledger -> InvalidStateError
    - timeout, error de red, 5xx, circuito abierto -> UpstreamError (reintentable)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._breaker = breaker or CircuitBreaker(
            "horizon",
            failure_threshold=5,
            recovery_timeout=30.0,
            expected_exceptions=(httpx.TransportError, _HorizonServerError, UpstreamError),
        )

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_once(self, tx_hash: str) -> OracleTransaction:
        response = await self._client.get(
            f"{self.base_url}/transactions/{tx_hash}",
            headers={"Accept": "application/json"},
        )

        if response.status_code == 404:
            raise InvalidStateError(f"Transacción {tx_hash} no encontrada en el ledger")
        if response.status_code == 429 or response.status_code >= 500:
            raise _HorizonServerError(f"Horizon respondió {response.status_code}")
        if response.status_code != 200:
            raise UpstreamError(f"Respuesta inesperada de Horizon: {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            raise UpstreamError("Horizon devolvió una respuesta no JSON")
        if not isinstance(body, dict):
            raise UpstreamError("Horizon devolvió un JSON que no es un objeto")

        memo = body.get("memo")
        return OracleTransaction(
            hash=body.get("hash", tx_hash),
            memo=memo if isinstance(memo, str) else None,
            memo_type=body.get("memo_type"),
            successful=bool(body.get("successful", True)),
        )

    async def get_transaction(self, tx_hash: str) -> OracleTransaction:
        """Obtener transacción por hash con timeout, retry y circuit breaker"""
        try:
            return await retry_with_backoff(
                lambda: self._breaker.call(lambda: self._fetch_once(tx_hash)),
                max_retries=self.max_retries,
                exceptions=(httpx.TransportError, _HorizonServerError),
                operation=f"Horizon GET /transactions/{tx_hash[:12]}",
            )
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timeout consultando Horizon: {e}") from e
        except (httpx.TransportError, _HorizonServerError) as e:
            raise UpstreamError(f"Horizon no disponible: {e}") from e
        except CircuitOpenError as e:
            raise UpstreamError(str(e)) from e
