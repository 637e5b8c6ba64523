"""Admin routes.  Every route requires an admin key; the actor is recorded."""

from fastapi import APIRouter, Depends

from contract_api.dependencies import get_lifecycle_service, get_selector, require_admin
from contract_api.schemas import (
    CancelRequest,
    ContractCreateRequest,
    ContractEventOut,
    ContractResponse,
    DeliveryOut,
    LinkOut,
    ResendRequest,
    SendResponse,
    SignatureOut,
    SyncResponse,
)
from contract_kernel.domain.dtos import ContractDraft, PartyDraft, SendResult
from contract_kernel.selectors.contract_selector import ContractSelector
from contract_kernel.services.contract_service import ContractLifecycleService

router = APIRouter(tags=["admin"])


def _send_response(result: SendResult) -> SendResponse:
    return SendResponse(
        contract=ContractResponse.from_info(result.contract),
        links=[LinkOut.from_link(link) for link in result.links],
        deliveries=[DeliveryOut.from_result(d) for d in result.deliveries],
    )


@router.post("/contracts", response_model=ContractResponse, status_code=201)
def create_contract(
    body: ContractCreateRequest,
    actor: str = Depends(require_admin),
    service: ContractLifecycleService = Depends(get_lifecycle_service),
) -> ContractResponse:
    draft = ContractDraft(
        title=body.title,
        terms=body.terms,
        client=PartyDraft(body.client.name, body.client.email) if body.client else None,
        speaker=PartyDraft(body.speaker.name, body.speaker.email) if body.speaker else None,
        contract_number=body.contract_number,
        event_title=body.event_title,
        event_date=body.event_date,
        event_location=body.event_location,
        fee_amount=body.fee_amount,
        currency=body.currency,
    )
    return ContractResponse.from_info(service.create(draft, actor=actor))


@router.get("/contracts/{contract_id}", response_model=ContractResponse)
def get_contract(
    contract_id: int,
    actor: str = Depends(require_admin),
    selector: ContractSelector = Depends(get_selector),
) -> ContractResponse:
    return ContractResponse.from_info(selector.get(contract_id))


@router.get("/contracts/{contract_id}/signatures", response_model=list[SignatureOut])
def list_signatures(
    contract_id: int,
    actor: str = Depends(require_admin),
    selector: ContractSelector = Depends(get_selector),
) -> list[SignatureOut]:
    selector.get(contract_id)
    return [SignatureOut.from_info(s) for s in selector.signatures(contract_id)]


@router.get("/contracts/{contract_id}/history", response_model=list[ContractEventOut])
def contract_history(
    contract_id: int,
    actor: str = Depends(require_admin),
    selector: ContractSelector = Depends(get_selector),
) -> list[ContractEventOut]:
    selector.get(contract_id)
    return [ContractEventOut.from_info(e) for e in selector.history(contract_id)]


@router.post("/contracts/{contract_id}/send", response_model=SendResponse)
def send_contract(
    contract_id: int,
    actor: str = Depends(require_admin),
    service: ContractLifecycleService = Depends(get_lifecycle_service),
) -> SendResponse:
    return _send_response(service.send(contract_id, actor=actor))


@router.post("/contracts/{contract_id}/resend", response_model=SendResponse)
def resend_contract(
    contract_id: int,
    body: ResendRequest,
    actor: str = Depends(require_admin),
    service: ContractLifecycleService = Depends(get_lifecycle_service),
) -> SendResponse:
    return _send_response(service.resend(contract_id, body.party, actor=actor))


@router.post("/contracts/{contract_id}/cancel", response_model=ContractResponse)
def cancel_contract(
    contract_id: int,
    body: CancelRequest | None = None,
    actor: str = Depends(require_admin),
    service: ContractLifecycleService = Depends(get_lifecycle_service),
) -> ContractResponse:
    reason = body.reason if body else None
    return ContractResponse.from_info(service.cancel(contract_id, actor=actor, reason=reason))


@router.post("/admin/sync-statuses", response_model=SyncResponse)
def sync_statuses(
    actor: str = Depends(require_admin),
    service: ContractLifecycleService = Depends(get_lifecycle_service),
) -> SyncResponse:
    result = service.sync_statuses(actor=actor)
    return SyncResponse(
        examined=result.examined,
        updated=[
            {"contractId": cid, "from": old.value, "to": new.value}
            for cid, old, new in result.updated
        ],
    )
