"""Message API routes."""

from uuid import uuid4

from fastapi import APIRouter, status

from shared.api.response_models import ErrorResponse

from messaging.api.dependencies import ActorDep, ContainerDep
from messaging.api.schemas.message_dto import (
    DispatchResponse,
    InboundMessageRequest,
    InboundMessageResponse,
    SendMessageRequest,
    TemplateSubmitRequest,
)
from messaging.domain.entities.dispatch import DispatchRequest
from messaging.domain.value_objects.message_status import SendOrigin

router = APIRouter(
    prefix="/api/v1",
    tags=["messages"],
    responses={
        422: {"model": ErrorResponse, "description": "Validation Error"},
        429: {"model": ErrorResponse, "description": "Template quota used up"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
)


@router.post(
    "/messages/send",
    response_model=DispatchResponse,
    summary="Send a WhatsApp message",
    description="Run one message through compliance, throughput limits and the provider",
)
async def send_message(body: SendMessageRequest, container: ContainerDep, actor_id: ActorDep) -> DispatchResponse:
    request = DispatchRequest(
        tenant_id=body.tenant_id,
        recipient=body.recipient,
        payload=body.payload,
        message_type=body.message_type,
        campaign_id=body.campaign_id,
        origin=SendOrigin.CAMPAIGN if body.campaign_id else SendOrigin.AGENT,
        message_id=uuid4().hex,
        actor_id=actor_id,
        conversation_id=body.conversation_id,
    )
    result = await container.dispatcher.dispatch(request)
    return DispatchResponse.from_result(result)


@router.post(
    "/messages/inbound",
    response_model=InboundMessageResponse,
    summary="Record an inbound customer message",
    description="Applies opt-out / opt-in keywords and starts the first-response SLA",
)
async def inbound_message(body: InboundMessageRequest, container: ContainerDep) -> InboundMessageResponse:
    keyword = await container.compliance.process_inbound(body.tenant_id, body.sender, body.body)
    deadline = await container.sla.set_deadline(body.tenant_id, body.conversation_id)
    return InboundMessageResponse(
        consent_action=keyword.action,
        sla_deadline=deadline.deadline.isoformat() if deadline and deadline.deadline else None,
    )


@router.post(
    "/templates/submit",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a message template",
    description="Counts against the tenant's daily template submission quota",
)
async def submit_template(body: TemplateSubmitRequest, container: ContainerDep, actor_id: ActorDep) -> dict:
    return await container.dispatcher.submit_template(body.tenant_id, body.template, actor_id=actor_id)
