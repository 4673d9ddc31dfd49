"""Static tenant policy provider."""

from __future__ import annotations

from typing import Dict, Optional

from messaging.domain.entities.tenant_policy import TenantPolicy


class StaticTenantPolicyProvider:
    """Policies registered up front; unknown tenants get the free-tier default."""

    def __init__(self, policies: Optional[Dict[str, TenantPolicy]] = None) -> None:
        self._policies: Dict[str, TenantPolicy] = dict(policies or {})

    def set_policy(self, policy: TenantPolicy) -> None:
        self._policies[policy.tenant_id] = policy

    async def get_policy(self, tenant_id: str) -> TenantPolicy:
        return self._policies.get(tenant_id) or TenantPolicy(tenant_id=tenant_id)
