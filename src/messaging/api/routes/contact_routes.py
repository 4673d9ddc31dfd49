"""Contact consent routes."""

from fastapi import APIRouter

from messaging.api.dependencies import ActorDep, ContainerDep
from messaging.api.schemas.message_dto import ConsentRequest, ConsentResponse
from messaging.domain.value_objects.governance import ConsentSource

router = APIRouter(prefix="/api/v1/contacts", tags=["contacts"])


@router.post("/opt-out", response_model=ConsentResponse, summary="Opt a contact out of messaging")
async def opt_out(body: ConsentRequest, container: ContainerDep, actor_id: ActorDep) -> ConsentResponse:
    consent = await container.compliance.opt_out(
        body.tenant_id, body.phone, source=ConsentSource.MANUAL, reason=body.reason, actor_id=actor_id
    )
    return ConsentResponse(tenant_id=consent.tenant_id, phone=consent.phone, opted_out=consent.opted_out)


@router.post("/opt-in", response_model=ConsentResponse, summary="Opt a contact back in")
async def opt_in(body: ConsentRequest, container: ContainerDep, actor_id: ActorDep) -> ConsentResponse:
    consent = await container.compliance.opt_in(
        body.tenant_id, body.phone, source=ConsentSource.MANUAL, actor_id=actor_id
    )
    return ConsentResponse(tenant_id=consent.tenant_id, phone=consent.phone, opted_out=consent.opted_out)
