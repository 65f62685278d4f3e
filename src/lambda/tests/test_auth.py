"""Unit tests for caller identity."""
import sys
from pathlib import Path
from unittest.mock import patch

import jwt
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from common import auth
from common.errors import Forbidden, Unauthenticated

SECRET = "unit-test-signing-secret-0123456789abcdef"


def _token(payload, secret=SECRET):
    return jwt.encode(payload, secret, algorithm="HS256")


def test_verify_reads_jwt_authorizer_claims():
    event = {"requestContext": {"authorizer": {"jwt": {"claims": {"sub": "u-1", "email": "a@b.c"}}}}}
    assert auth.verify(event) == {"userId": "u-1", "email": "a@b.c", "role": "customer"}


def test_verify_reads_lambda_authorizer_context():
    event = {"requestContext": {"authorizer": {"lambda": {"userId": "u-2", "role": "admin"}}}}
    assert auth.verify(event)["role"] == "admin"


@patch("common.config.JWT_SECRET", SECRET)
def test_verify_bearer_token():
    event = {"headers": {"Authorization": "Bearer " + _token({"userId": "u-3", "role": "admin", "email": "x@y.z"})}}
    assert auth.verify(event) == {"userId": "u-3", "email": "x@y.z", "role": "admin"}


@patch("common.config.JWT_SECRET", SECRET)
def test_verify_token_cookie():
    token = _token({"userId": "u-4"})
    assert auth.verify({"cookies": ["theme=dark", f"token={token}"]})["userId"] == "u-4"
    assert auth.verify({"headers": {"cookie": f"theme=dark; token={token}"}})["userId"] == "u-4"


@patch("common.config.JWT_SECRET", SECRET)
def test_verify_bad_signature():
    event = {"headers": {"authorization": "Bearer " + _token({"userId": "u"}, secret="another-signing-secret-0123456789abcdef")}}
    with pytest.raises(Unauthenticated):
        auth.verify(event)


@patch("common.config.JWT_SECRET", SECRET)
def test_unknown_role_falls_back_to_customer():
    event = {"headers": {"authorization": "Bearer " + _token({"userId": "u", "role": "root"})}}
    assert auth.verify(event)["role"] == "customer"


def test_verify_without_credentials():
    with pytest.raises(Unauthenticated):
        auth.verify({"headers": {}})


@patch("common.config.JWT_SECRET", "")
def test_verify_without_secret_rejects_tokens():
    with pytest.raises(Unauthenticated):
        auth.verify({"headers": {"authorization": "Bearer " + _token({"userId": "u"})}})


def test_require_admin():
    assert auth.requireAdmin({"userId": "a", "role": "admin"})["userId"] == "a"
    with pytest.raises(Forbidden):
        auth.requireAdmin({"userId": "c", "role": "customer"})
