"""Signer-facing routes.  Authorized by the party token only."""

from fastapi import APIRouter, Depends, Query, Request

from contract_api.dependencies import client_ip, get_signing_gateway
from contract_api.schemas import SigningContextResponse, SignRequest, SignResponse
from contract_kernel.domain.dtos import SignatureRequest
from contract_kernel.services.signing_gateway import SigningGateway

router = APIRouter(tags=["signing"])


@router.get("/contracts/{contract_id}/signing", response_model=SigningContextResponse)
def signing_context(
    contract_id: int,
    token: str = Query(..., min_length=1),
    gateway: SigningGateway = Depends(get_signing_gateway),
) -> SigningContextResponse:
    return SigningContextResponse.from_context(gateway.signing_context(contract_id, token))


@router.post("/contracts/{contract_id}/sign", response_model=SignResponse)
def sign(
    contract_id: int,
    body: SignRequest,
    request: Request,
    gateway: SigningGateway = Depends(get_signing_gateway),
) -> SignResponse:
    result = gateway.sign(
        SignatureRequest(
            contract_id=contract_id,
            token=body.token,
            signer_type=body.signer_type,
            signer_name=body.signer_name,
            signer_title=body.signer_title,
            signature_method=body.signature_method,
            signature_data=body.signature_data,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    )
    return SignResponse(
        is_fully_executed=result.is_fully_executed,
        signature_id=result.signature_id,
        status=result.status.value,
        signed_at=result.signed_at,
    )
