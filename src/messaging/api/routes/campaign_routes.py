"""Campaign control routes."""

from typing import Annotated, Any

from fastapi import APIRouter, Path

from messaging.api.dependencies import ActorDep, ContainerDep

router = APIRouter(prefix="/api/v1", tags=["campaigns"])

CampaignId = Annotated[str, Path(min_length=1)]


@router.get("/campaigns/{campaign_id}", summary="Campaign pause, backoff and error state")
async def get_campaign(campaign_id: CampaignId, container: ContainerDep) -> dict[str, Any]:
    return await container.campaigns.describe(campaign_id)


@router.post(
    "/campaigns/{campaign_id}/resume",
    summary="Resume a paused campaign",
    description="Clears the pause flag, the backoff state and the consecutive error counter",
)
async def resume_campaign(campaign_id: CampaignId, container: ContainerDep, actor_id: ActorDep) -> dict[str, Any]:
    await container.campaigns.resume(campaign_id, actor_id=actor_id)
    return await container.campaigns.describe(campaign_id)


@router.get("/tenants/{tenant_id}/quota", summary="Tenant plan limits and usage")
async def tenant_quota(tenant_id: Annotated[str, Path(min_length=1)], container: ContainerDep) -> dict[str, Any]:
    return await container.limiter.quota_status(tenant_id)
