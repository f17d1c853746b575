"""
Tests for state and PKCE generation.
"""

import base64
import hashlib
import re

from wearables.pkce import new_pkce_pair, new_state, s256_challenge


class TestNewState:
    def test_state_is_256_bit_hex(self):
        assert re.fullmatch(r"[0-9a-f]{64}", new_state())

    def test_states_do_not_repeat(self):
        assert len({new_state() for _ in range(200)}) == 200


class TestPkcePair:
    def test_challenge_is_base64url_sha256_of_verifier(self):
        for _ in range(25):
            verifier, challenge = new_pkce_pair()
            digest = hashlib.sha256(verifier.encode()).digest()
            assert challenge == base64.urlsafe_b64encode(digest).decode().rstrip("=")

    def test_verifier_is_url_safe_and_long_enough(self):
        verifier, challenge = new_pkce_pair()
        assert re.fullmatch(r"[A-Za-z0-9_-]{43}", verifier)
        assert "=" not in challenge
        assert "+" not in challenge and "/" not in challenge

    def test_known_vector(self):
        # RFC 7636 appendix B
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert s256_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_pairs_are_independent(self):
        a, b = new_pkce_pair(), new_pkce_pair()
        assert a.verifier != b.verifier
        assert a.challenge != b.challenge
