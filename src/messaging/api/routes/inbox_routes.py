"""Shared inbox routes: advisory reply locks and first-response SLA."""

from typing import Annotated

from fastapi import APIRouter, Path, Query

from messaging.api.dependencies import ContainerDep
from messaging.api.schemas.inbox_dto import (
    ReplyLockAcquireResponse,
    ReplyLockReleaseResponse,
    ReplyLockRequest,
    ReplyLockStatusResponse,
    SlaBreachResponse,
    SlaStatsResponse,
)

router = APIRouter(prefix="/api/v1", tags=["inbox"])

ConversationId = Annotated[str, Path(min_length=1, description="Conversation id")]
TenantQuery = Annotated[str, Query(min_length=1, description="Tenant id")]


@router.post(
    "/conversations/{conversation_id}/reply-lock",
    response_model=ReplyLockAcquireResponse,
    summary="Claim the reply lock",
    description="Advisory only: a held lock tells the agent who is replying, it never blocks the send",
)
async def acquire_reply_lock(
    conversation_id: ConversationId, body: ReplyLockRequest, container: ContainerDep
) -> ReplyLockAcquireResponse:
    result = await container.reply_locks.acquire(body.tenant_id, conversation_id, body.holder_id)
    return ReplyLockAcquireResponse(
        acquired=result.acquired,
        current_holder=result.current_holder,
        expires_at=result.expires_at,
        reason=result.reason,
        message=result.message,
    )


@router.get("/conversations/{conversation_id}/reply-lock", response_model=ReplyLockStatusResponse)
async def reply_lock_status(conversation_id: ConversationId, container: ContainerDep) -> ReplyLockStatusResponse:
    lock = await container.reply_locks.status(conversation_id)
    return ReplyLockStatusResponse(
        locked=lock.locked,
        holder_id=lock.holder_id,
        acquired_at=lock.acquired_at,
        expires_at=lock.expires_at,
        remaining_seconds=lock.remaining_seconds,
    )


@router.delete("/conversations/{conversation_id}/reply-lock", response_model=ReplyLockReleaseResponse)
async def release_reply_lock(
    conversation_id: ConversationId,
    tenant_id: TenantQuery,
    holder_id: Annotated[str, Query(min_length=1)],
    container: ContainerDep,
) -> ReplyLockReleaseResponse:
    released = await container.reply_locks.release(tenant_id, conversation_id, holder_id)
    return ReplyLockReleaseResponse(released=released)


@router.get("/sla/breaches", response_model=list[SlaBreachResponse], summary="Breached conversations")
async def list_breaches(tenant_id: TenantQuery, container: ContainerDep) -> list[SlaBreachResponse]:
    records = await container.sla.list_breached(tenant_id)
    return [
        SlaBreachResponse(
            conversation_id=r.conversation_id,
            tenant_id=r.tenant_id,
            started_at=r.started_at,
            deadline=r.deadline,
            breached_at=r.breached_at,
            escalated_at=r.escalated_at,
            priority=r.priority.value,
            first_response_at=r.first_response_at,
        )
        for r in records
    ]


@router.get("/sla/stats", response_model=SlaStatsResponse)
async def sla_stats(tenant_id: TenantQuery, container: ContainerDep) -> SlaStatsResponse:
    return SlaStatsResponse.model_validate(await container.sla.stats(tenant_id))
