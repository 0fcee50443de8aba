import time

import pytest
from jose import jwt

from invitation_engine.domain.tokens import (
    build_invitation_link,
    decode_token_unverified,
    get_invitation_id_from_token,
    hash_token,
    is_token_expired,
)


def _unsigned_token(claims):
    return jwt.encode(claims, "secret", algorithm="HS256")


def test_hash_token_is_sha256_hex():
    digest = hash_token("abc")
    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert len(digest) == 64


def test_hash_token_rejects_empty():
    with pytest.raises(ValueError):
        hash_token("")


def test_build_invitation_link_url_encodes_token():
    link = build_invitation_link("a.b+c/d", "https://portal.example.com/onboard")
    assert link == "https://portal.example.com/onboard?token=a.b%2Bc%2Fd"


def test_decode_token_unverified_reads_claims():
    token = _unsigned_token({"invitation_id": "inv-1", "exp": int(time.time()) + 60})
    assert decode_token_unverified(token)["invitation_id"] == "inv-1"
    assert get_invitation_id_from_token(token) == "inv-1"


def test_decode_token_unverified_rejects_garbage():
    with pytest.raises(ValueError):
        decode_token_unverified("not-a-token")
    assert get_invitation_id_from_token("not-a-token") is None


def test_is_token_expired():
    past = _unsigned_token({"exp": int(time.time()) - 10})
    future = _unsigned_token({"exp": int(time.time()) + 3600})
    assert is_token_expired(past)
    assert not is_token_expired(future)
