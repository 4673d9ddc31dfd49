"""
Tenant Policy Provider Protocol
"""
from abc import abstractmethod
from typing import Protocol

from messaging.domain.entities.tenant_policy import TenantPolicy


class TenantPolicyProvider(Protocol):
    """Read-only per-tenant inputs, resolved at call time."""

    @abstractmethod
    async def get_policy(self, tenant_id: str) -> TenantPolicy:
        """Never raises for unknown tenants; returns the free-tier default."""
        ...
