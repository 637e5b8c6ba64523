"""
SignatureLedger -- append-only signature storage.

Responsibility:
    Writes exactly one Signature row per (contract, signer_type) and answers
    ledger questions ("has this party signed?", "when did each party
    sign?") straight from the ledger table.

Architecture position:
    Kernel > Services -- flush-only.  Called by SigningGateway inside its
    transaction.

Invariants enforced:
    - One signature per (contract_id, signer_type): the
      ``uq_signature_contract_signer`` constraint decides every race.  A
      losing insert runs inside a savepoint: only the savepoint is rolled
      back and AlreadySignedError is raised.  The caller's transaction is
      left intact; ending it is the caller's job.
    - Append-only: no update or delete methods exist (and listeners /
      triggers block them anyway).
    - Ledger reads go to the database, never to a cached flag, so status
      recomputation sees every committed signature plus this transaction's.

Failure modes:
    - AlreadySignedError: a signature for the party already exists.

Audit relevance:
    ``signature_recorded`` is logged with contract id, signer type and
    signature id (never the token).
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from contract_kernel.domain.lifecycle import SignatureMethod, SignerType
from contract_kernel.exceptions import AlreadySignedError
from contract_kernel.logging_config import get_logger
from contract_kernel.models.signature import Signature
from contract_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class SignatureLedger(BaseService[Signature]):
    """
    Append-only signature ledger.

    Non-goals:
        - Does NOT check tokens, expiration or contract status; the
          SigningGateway does that before calling ``record``.
    """

    def has_signed(self, contract_id: int, signer_type: SignerType) -> bool:
        return (
            self.session.execute(
                select(Signature.id).where(
                    Signature.contract_id == contract_id,
                    Signature.signer_type == SignerType(signer_type).value,
                )
            ).first()
            is not None
        )

    def signed_at_by_party(self, contract_id: int) -> dict[SignerType, datetime]:
        """signed_at for every party with a ledger entry on the contract."""
        rows = self.session.execute(
            select(Signature.signer_type, Signature.signed_at).where(
                Signature.contract_id == contract_id
            )
        ).all()
        return {SignerType(signer_type): signed_at for signer_type, signed_at in rows}

    def entries(self, contract_id: int) -> list[Signature]:
        return list(
            self.session.execute(
                select(Signature)
                .where(Signature.contract_id == contract_id)
                .order_by(Signature.id)
            ).scalars()
        )

    def record(
        self,
        *,
        contract_id: int,
        signer_type: SignerType,
        signer_name: str,
        signer_email: str,
        signed_at: datetime,
        signer_title: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        signature_method: SignatureMethod = SignatureMethod.ELECTRONIC,
        signature_data: str | None = None,
    ) -> Signature:
        """
        Append one signature.

        Postconditions:
            - On success the row is flushed and has an id.
            - On a uniqueness collision AlreadySignedError is raised and
              nothing was written; the enclosing transaction stays usable.
        """
        signer_type = SignerType(signer_type)
        signature = Signature(
            contract_id=contract_id,
            signer_type=signer_type.value,
            signer_name=signer_name,
            signer_email=signer_email,
            signer_title=signer_title,
            ip_address=ip_address,
            user_agent=user_agent,
            signature_method=SignatureMethod(signature_method).value,
            signature_data=signature_data,
            signed_at=signed_at,
        )
        try:
            with self.session.begin_nested():
                self.session.add(signature)
        except IntegrityError:
            # Lost the race on uq_signature_contract_signer
            logger.warning(
                "signature_duplicate_rejected",
                extra={"contract_id": contract_id, "signer_type": signer_type.value},
            )
            raise AlreadySignedError(contract_id, signer_type.value) from None

        logger.info(
            "signature_recorded",
            extra={
                "contract_id": contract_id,
                "signer_type": signer_type.value,
                "signature_id": signature.id,
            },
        )
        return signature
