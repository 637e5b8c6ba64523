"""Token issuer: length, alphabet, uniqueness, expiration horizon, comparison."""

from datetime import timedelta

import pytest

from contract_kernel.domain.clock import DeterministicClock
from contract_kernel.domain.lifecycle import SignerType
from contract_kernel.domain.tokens import (
    DEFAULT_TOKEN_TTL,
    MIN_TOKEN_LENGTH,
    TOKEN_ALPHABET,
    SigningPolicy,
    TokenIssuer,
    generate_token,
    token_fingerprint,
    tokens_match,
)


@pytest.fixture
def issuer(deterministic_clock):
    return TokenIssuer(SigningPolicy(), deterministic_clock)


class TestGenerateToken:
    def test_length_and_alphabet(self):
        token = generate_token()
        assert len(token) == MIN_TOKEN_LENGTH
        assert set(token) <= set(TOKEN_ALPHABET)

    def test_longer_tokens(self):
        assert len(generate_token(64)) == 64

    def test_too_short_rejected(self):
        with pytest.raises(ValueError):
            generate_token(MIN_TOKEN_LENGTH - 1)

    def test_no_collisions_in_a_large_sample(self):
        tokens = {generate_token() for _ in range(2000)}
        assert len(tokens) == 2000

    def test_alphabet_is_url_safe(self):
        assert TOKEN_ALPHABET.isalnum()
        assert len(TOKEN_ALPHABET) == 62


class TestTokenIssuer:
    def test_one_token_per_required_party(self, issuer, deterministic_clock):
        issued = issuer.issue_tokens([SignerType.CLIENT, SignerType.SPEAKER])
        assert set(issued.tokens) == {SignerType.CLIENT, SignerType.SPEAKER}
        assert issued.for_party(SignerType.CLIENT) != issued.for_party(SignerType.SPEAKER)
        assert issued.expires_at == deterministic_clock.now() + DEFAULT_TOKEN_TTL

    def test_unilateral(self, issuer):
        issued = issuer.issue_tokens([SignerType.CLIENT])
        assert list(issued.tokens) == [SignerType.CLIENT]

    def test_duplicate_parties_collapse(self, issuer):
        issued = issuer.issue_tokens([SignerType.CLIENT, SignerType.CLIENT])
        assert len(issued.tokens) == 1

    def test_custom_ttl(self, issuer, deterministic_clock):
        issued = issuer.issue_tokens([SignerType.CLIENT], ttl=timedelta(days=7))
        assert issued.expires_at == deterministic_clock.now() + timedelta(days=7)

    def test_no_parties_rejected(self, issuer):
        with pytest.raises(ValueError):
            issuer.issue_tokens([])

    def test_reissue_yields_new_token(self, issuer):
        first = issuer.issue_token(SignerType.SPEAKER)
        second = issuer.issue_token(SignerType.SPEAKER)
        assert first != second

    def test_expiry_follows_clock(self):
        clock = DeterministicClock()
        issuer = TokenIssuer(SigningPolicy(token_ttl=timedelta(days=1)), clock)
        before = issuer.expires_at()
        clock.advance_days(3)
        assert issuer.expires_at() == before + timedelta(days=3)


class TestSigningPolicy:
    def test_short_token_length_rejected(self):
        with pytest.raises(ValueError, match="token_length"):
            SigningPolicy(token_length=16)

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValueError, match="token_ttl"):
            SigningPolicy(token_ttl=timedelta(0))


class TestTokenComparison:
    def test_match(self):
        token = generate_token()
        assert tokens_match(token, str(token))

    def test_mismatch(self):
        assert not tokens_match(generate_token(), generate_token())

    def test_prefix_does_not_match(self):
        token = generate_token()
        assert not tokens_match(token[:-1], token)

    @pytest.mark.parametrize("presented, stored", [(None, "x" * 40), ("x" * 40, None), ("", ""), (None, None)])
    def test_missing_never_matches(self, presented, stored):
        assert not tokens_match(presented, stored)

    def test_fingerprint_is_short_and_stable(self):
        token = generate_token()
        assert token_fingerprint(token) == token_fingerprint(token)
        assert len(token_fingerprint(token)) == 12
        assert token not in token_fingerprint(token)
