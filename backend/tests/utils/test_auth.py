from datetime import timedelta

import jwt
import pytest
from tablehold.utils.auth import create_access_token, decode_access_token, parse_bearer


def test_token_round_trip_keeps_scope() -> None:
    token = create_access_token(subject_id=42, secret="s3cret", scope="restaurant")
    assert decode_access_token(token, secret="s3cret", algorithms=["HS256"], scope="restaurant") == 42


def test_decode_rejects_wrong_scope() -> None:
    token = create_access_token(subject_id=42, secret="s3cret", scope="user")
    with pytest.raises(ValueError, match="scope"):
        decode_access_token(token, secret="s3cret", algorithms=["HS256"], scope="restaurant")


def test_decode_rejects_bad_signature_and_expiry() -> None:
    token = create_access_token(subject_id=1, secret="other")
    with pytest.raises(ValueError):
        decode_access_token(token, secret="s3cret", algorithms=["HS256"], scope="user")
    expired = create_access_token(subject_id=1, secret="s3cret", expires_delta=timedelta(seconds=-1))
    with pytest.raises(ValueError):
        decode_access_token(expired, secret="s3cret", algorithms=["HS256"], scope="user")


def test_decode_rejects_non_integer_subject() -> None:
    token = jwt.encode({"sub": "abc", "scope": "user"}, "s3cret", algorithm="HS256")
    with pytest.raises(ValueError):
        decode_access_token(token, secret="s3cret", algorithms=["HS256"], scope="user")


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc.def", "abc.def"),
        ("bearer   abc.def  ", "abc.def"),
        ("Basic abc", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_bearer(header: str | None, expected: str | None) -> None:
    assert parse_bearer(header) == expected
