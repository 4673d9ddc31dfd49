"""Retry queue and dead-letter routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Path, Query

from messaging.api.dependencies import ActorDep, ContainerDep
from messaging.api.schemas.retry_dto import DeadLetterResponse, ResendResponse, RetryStatsResponse

router = APIRouter(prefix="/api/v1/retry", tags=["retry"])


@router.get("/dead-letters", response_model=list[DeadLetterResponse], summary="List dead-lettered messages")
async def list_dead_letters(
    container: ContainerDep,
    tenant_id: Annotated[Optional[str], Query(description="Restrict to one tenant")] = None,
) -> list[DeadLetterResponse]:
    jobs = await container.retry_queue.list_dead_letters(tenant_id)
    return [DeadLetterResponse.from_job(job) for job in jobs]


@router.post(
    "/dead-letters/{message_id}/resend",
    response_model=ResendResponse,
    summary="Resend a dead-lettered message",
    description="Requeues the message with a fresh retry budget, due immediately",
)
async def resend_dead_letter(
    message_id: Annotated[str, Path(min_length=1)], container: ContainerDep, actor_id: ActorDep
) -> ResendResponse:
    job = await container.retry_queue.resend_dead_letter(message_id, actor_id=actor_id)
    return ResendResponse(message_id=job.message_id, retry_count=job.retry_count, scheduled_at=job.scheduled_at)


@router.get("/stats", response_model=RetryStatsResponse)
async def retry_stats(container: ContainerDep) -> RetryStatsResponse:
    return RetryStatsResponse(**(await container.retry_queue.stats()))
