"""Request/response schemas for the contract HTTP API (camelCase on the wire)."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from contract_kernel.domain.dtos import (
    ContractEventInfo,
    ContractInfo,
    DeliveryResult,
    IssuedLink,
    SignatureInfo,
    SigningContext,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests


class PartyIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)


class ContractCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    terms: str = ""
    client: Optional[PartyIn] = None
    speaker: Optional[PartyIn] = None
    contract_number: Optional[str] = Field(None, max_length=50)
    event_title: Optional[str] = None
    event_date: Optional[date] = None
    event_location: Optional[str] = None
    fee_amount: Optional[Decimal] = None
    currency: str = "USD"


class SignRequest(CamelModel):
    token: str = Field(..., min_length=1)
    signer_type: str
    signer_name: str = Field(..., min_length=1, max_length=255)
    signer_title: Optional[str] = Field(None, max_length=255)
    signature_method: Optional[str] = None
    # Pad drawings arrive as data: URLs
    signature_data: Optional[str] = Field(None, max_length=2_000_000)


class ResendRequest(CamelModel):
    party: str


class CancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)


# Responses


class HealthResponse(CamelModel):
    status: str = "ok"


class ErrorResponse(CamelModel):
    error: str
    message: str


class PartyOut(CamelModel):
    signer_type: str
    name: str
    email: str
    signed_at: Optional[datetime] = None


class ContractResponse(CamelModel):
    id: int
    contract_number: str
    title: str
    status: str
    required_parties: list[str]
    parties: list[PartyOut]
    event_title: Optional[str] = None
    event_date: Optional[date] = None
    event_location: Optional[str] = None
    fee_amount: Optional[Decimal] = None
    currency: str
    tokens_expire_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    fully_executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: str

    @classmethod
    def from_info(cls, info: ContractInfo) -> "ContractResponse":
        return cls(
            id=info.id,
            contract_number=info.contract_number,
            title=info.title,
            status=info.status.value,
            required_parties=[p.value for p in info.required_parties],
            parties=[
                PartyOut(
                    signer_type=p.signer_type.value,
                    name=p.name,
                    email=p.email,
                    signed_at=p.signed_at,
                )
                for p in info.parties
            ],
            event_title=info.event_title,
            event_date=info.event_date,
            event_location=info.event_location,
            fee_amount=info.fee_amount,
            currency=info.currency,
            tokens_expire_at=info.tokens_expire_at,
            sent_at=info.sent_at,
            fully_executed_at=info.fully_executed_at,
            cancelled_at=info.cancelled_at,
            cancellation_reason=info.cancellation_reason,
            created_at=info.created_at,
            created_by=info.created_by,
        )


class DeliveryOut(CamelModel):
    party: str
    kind: str
    status: str
    recipient: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: DeliveryResult) -> "DeliveryOut":
        return cls(
            party=result.party.value,
            kind=result.kind,
            status=result.status.value,
            recipient=result.recipient,
            error=result.error,
        )


class LinkOut(CamelModel):
    party: str
    email: str
    url: str

    @classmethod
    def from_link(cls, link: IssuedLink) -> "LinkOut":
        return cls(party=link.party.value, email=link.email, url=link.url)


class SendResponse(CamelModel):
    contract: ContractResponse
    links: list[LinkOut]
    deliveries: list[DeliveryOut]


class SigningContextResponse(CamelModel):
    contract_id: int
    contract_number: str
    title: str
    terms: str
    signer_type: str
    signer_name: str
    status: str
    required_parties: list[str]
    signed: dict[str, bool]
    can_sign: bool
    event_title: Optional[str] = None
    event_date: Optional[date] = None
    event_location: Optional[str] = None
    fee_amount: Optional[Decimal] = None
    currency: str
    tokens_expire_at: Optional[datetime] = None

    @classmethod
    def from_context(cls, ctx: SigningContext) -> "SigningContextResponse":
        return cls(
            contract_id=ctx.contract_id,
            contract_number=ctx.contract_number,
            title=ctx.title,
            terms=ctx.terms,
            signer_type=ctx.signer_type.value,
            signer_name=ctx.signer_name,
            status=ctx.status.value,
            required_parties=[p.value for p in ctx.required_parties],
            signed={p.value: flag for p, flag in ctx.signed.items()},
            can_sign=ctx.can_sign,
            event_title=ctx.event_title,
            event_date=ctx.event_date,
            event_location=ctx.event_location,
            fee_amount=ctx.fee_amount,
            currency=ctx.currency,
            tokens_expire_at=ctx.tokens_expire_at,
        )


class SignResponse(CamelModel):
    success: bool = True
    is_fully_executed: bool
    signature_id: int
    status: str
    signed_at: datetime


class SignatureOut(CamelModel):
    id: int
    signer_type: str
    signer_name: str
    signer_email: str
    signer_title: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    signed_at: datetime
    signature_method: str
    signature_data: Optional[str] = None

    @classmethod
    def from_info(cls, info: SignatureInfo) -> "SignatureOut":
        return cls(
            id=info.id,
            signer_type=info.signer_type.value,
            signer_name=info.signer_name,
            signer_email=info.signer_email,
            signer_title=info.signer_title,
            ip_address=info.ip_address,
            user_agent=info.user_agent,
            signed_at=info.signed_at,
            signature_method=info.signature_method.value,
            signature_data=info.signature_data,
        )


class ContractEventOut(CamelModel):
    id: int
    action: str
    actor: str
    occurred_at: datetime
    detail: dict = {}

    @classmethod
    def from_info(cls, info: ContractEventInfo) -> "ContractEventOut":
        return cls(
            id=info.id,
            action=info.action,
            actor=info.actor,
            occurred_at=info.occurred_at,
            detail=info.detail,
        )


class SyncResponse(CamelModel):
    examined: int
    updated: list[dict[str, str | int]]
