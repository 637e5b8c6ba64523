"""
Token Issuer (``contract_kernel.domain.tokens``).

Responsibility
--------------
Produces one unguessable, URL-safe signing token per required party plus a
single shared expiration horizon.  Persistence is the caller's job.

Tokens are drawn with ``secrets.choice`` from a uniform 62-character
alphanumeric alphabet; at the minimum length of 40 that is ~238 bits of
entropy, so collisions across the lifetime of the system are negligible
and nothing about a token is derivable from the contract id or an email.

Comparison of a presented token against a stored token goes through
``tokens_match`` (constant-time).

Architecture position
---------------------
**Kernel domain layer**.  The only I/O is the OS CSPRNG behind ``secrets``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from contract_kernel.domain.clock import Clock
from contract_kernel.domain.lifecycle import SignerType

TOKEN_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
MIN_TOKEN_LENGTH = 40
DEFAULT_TOKEN_TTL = timedelta(days=90)


@dataclass(frozen=True)
class SigningPolicy:
    """Kernel-side signing settings (built from configuration by a bridge)."""

    token_length: int = MIN_TOKEN_LENGTH
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    contract_number_prefix: str = "CTR"
    signing_base_url: str = ""

    def __post_init__(self) -> None:
        if self.token_length < MIN_TOKEN_LENGTH:
            raise ValueError(
                f"token_length must be at least {MIN_TOKEN_LENGTH}, got {self.token_length}"
            )
        if self.token_ttl <= timedelta(0):
            raise ValueError("token_ttl must be positive")


@dataclass(frozen=True)
class IssuedTokens:
    """Tokens for each required party and their shared expiration."""

    tokens: dict[SignerType, str] = field(default_factory=dict)
    expires_at: datetime | None = None

    def for_party(self, party: SignerType) -> str:
        return self.tokens[party]


def generate_token(length: int = MIN_TOKEN_LENGTH) -> str:
    if length < MIN_TOKEN_LENGTH:
        raise ValueError(f"token length must be at least {MIN_TOKEN_LENGTH}")
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def tokens_match(presented: str | None, stored: str | None) -> bool:
    """Constant-time comparison; a missing token on either side never matches."""
    if not presented or not stored:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


def token_fingerprint(token: str) -> str:
    """Short non-reversible identifier for a token, safe to log."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]


class TokenIssuer:
    """
    Issues signing tokens and the expiration horizon.

    Contract:
        - ``issue_tokens`` returns one fresh token per distinct required
          party and ``expires_at = clock.now() + ttl``.
        - Re-issuing for a party (resend) yields a new token; the caller
          overwrites the stored one, which invalidates the old link.
    """

    def __init__(self, policy: SigningPolicy, clock: Clock):
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> SigningPolicy:
        return self._policy

    def expires_at(self, ttl: timedelta | None = None) -> datetime:
        return self._clock.now() + (ttl or self._policy.token_ttl)

    def issue_token(self, party: SignerType) -> str:
        return generate_token(self._policy.token_length)

    def issue_tokens(
        self,
        required_parties: Iterable[SignerType],
        ttl: timedelta | None = None,
    ) -> IssuedTokens:
        parties = list(dict.fromkeys(required_parties))
        if not parties:
            raise ValueError("at least one required party is needed to issue tokens")
        return IssuedTokens(
            tokens={party: self.issue_token(party) for party in parties},
            expires_at=self.expires_at(ttl),
        )
