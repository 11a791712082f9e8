"""
chains/ - Blockchain interaction layer (read-only).

Modules:
- providers: RPC provider management with failover
"""

from chains.providers import (
    RPCProvider,
    RPCResponse,
    RPCStats,
    provider_from_env,
)

__all__ = [
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    "provider_from_env",
]
