"""
chains/providers.py - Read-only JSON-RPC provider with failover.

Provides:
- Multiple endpoint failover
- Request timeout handling
- Latency / success tracking per endpoint
- eth_call and eth_gasPrice helpers used by the quoter, the price feed
  and the gas guardrail
"""

import os
import time
from dataclasses import dataclass
from typing import Any

import httpx
from dotenv import load_dotenv

from core.logging import get_logger
from core.exceptions import InfraError, ErrorCode

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

# Environment variables holding RPC URLs, by network name
NETWORK_RPC_ENV = {
    "mainnet": "ETH_RPC_URL",
    "sepolia": "SEPOLIA_RPC_URL",
}


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


class RPCProvider:
    """
    RPC provider with failover support.

    Tries multiple endpoints in order until one succeeds.
    Tracks statistics per endpoint for monitoring.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: list[str],
        timeout_seconds: int = 10,
    ):
        self.chain_id = chain_id
        self.timeout_seconds = timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._request_id = 0

        self.rpc_urls = [url for url in rpc_urls if url]

        self.stats: dict[str, RPCStats] = {
            url: RPCStats(url=url) for url in self.rpc_urls
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with failover.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPCResponse with result and metadata

        Raises:
            InfraError: If all endpoints fail
        """
        if not self.rpc_urls:
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message="No RPC endpoints configured",
                details={"chain_id": self.chain_id},
            )

        client = await self._get_client()
        last_error: Exception | None = None

        for url in self.rpc_urls:
            stats = self.stats[url]
            stats.total_requests += 1

            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
                "id": self._next_request_id(),
            }

            start_ms = int(time.time() * 1000)

            try:
                resp = await client.post(url, json=payload)
                latency_ms = int(time.time() * 1000) - start_ms

                result = resp.json()

                if "error" in result:
                    error_msg = result["error"].get("message", str(result["error"]))
                    stats.failed_requests += 1
                    stats.last_error = error_msg
                    last_error = InfraError(
                        code=ErrorCode.INFRA_RPC_ERROR,
                        message=f"RPC error: {error_msg}",
                        details={"url": url, "method": method},
                    )
                    logger.debug(
                        "RPC error",
                        extra={"context": {"url": url, "method": method, "error": error_msg}},
                    )
                    continue

                stats.successful_requests += 1
                stats.total_latency_ms += latency_ms
                stats.last_success_ts = int(time.time() * 1000)

                return RPCResponse(
                    result=result.get("result"),
                    latency_ms=latency_ms,
                    endpoint_used=url,
                )

            except httpx.TimeoutException as e:
                latency_ms = int(time.time() * 1000) - start_ms
                stats.failed_requests += 1
                stats.last_error = f"Timeout after {latency_ms}ms"
                last_error = e
                logger.debug(
                    "RPC timeout",
                    extra={"context": {"url": url, "method": method, "latency_ms": latency_ms}},
                )
                continue

            except (httpx.HTTPError, ValueError) as e:
                stats.failed_requests += 1
                stats.last_error = str(e)
                last_error = e
                logger.debug(
                    "RPC transport failure",
                    extra={"context": {"url": url, "method": method, "error": str(e)}},
                )
                continue

        code = (
            ErrorCode.INFRA_RPC_TIMEOUT
            if isinstance(last_error, httpx.TimeoutException)
            else ErrorCode.INFRA_RPC_ERROR
        )
        raise InfraError(
            code=code,
            message=f"All RPC endpoints failed for chain {self.chain_id}",
            details={
                "chain_id": self.chain_id,
                "method": method,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": str(last_error),
            },
        )

    async def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
    ) -> RPCResponse:
        """
        Make eth_call.

        Args:
            to: Contract address
            data: Encoded call data
            block: Block number or "latest"

        Returns:
            RPCResponse with call result
        """
        return await self.call(
            "eth_call",
            [{"to": to, "data": data}, block],
        )

    async def get_gas_price(self) -> int:
        """Current gas price in wei."""
        response = await self.call("eth_gasPrice")
        return int(response.result, 16)

    def get_stats_summary(self) -> dict:
        """Get statistics summary for all endpoints."""
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
            }
            for url, s in self.stats.items()
        }


def provider_from_env(
    network: str,
    chain_id: int,
    timeout_seconds: int = 10,
) -> RPCProvider:
    """
    Build a provider from the RPC URL environment variable of a network.

    `.env` files are honoured (python-dotenv). Unknown networks and unset
    variables yield a provider with no endpoints, whose calls raise
    InfraError.
    """
    env_var = NETWORK_RPC_ENV.get(network, f"{network.upper()}_RPC_URL")
    url = os.getenv(env_var, "")
    if not url:
        logger.warning(
            "RPC URL not configured",
            extra={"context": {"network": network, "env_var": env_var}},
        )
    return RPCProvider(chain_id, [url], timeout_seconds)
