import time
from uuid import uuid4

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from medlegal.core.auth import decode_token, get_current_user

SECRET = "test-jwt-secret"


def _token(**claims) -> str:
    payload = {"sub": str(uuid4()), "exp": int(time.time()) + 300}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


def test_decode_valid_token():
    user_id = str(uuid4())
    claims = decode_token(_token(sub=user_id, email="paralegal@firm.test"))
    assert claims.sub == user_id
    assert claims.email == "paralegal@firm.test"


def test_decode_rejects_expired_token():
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_token(_token(exp=int(time.time()) - 10))


def test_decode_rejects_wrong_signature():
    token = jwt.encode({"sub": str(uuid4()), "exp": int(time.time()) + 300}, "other-secret", algorithm="HS256")
    with pytest.raises(jwt.InvalidSignatureError):
        decode_token(token)


@pytest.mark.asyncio
async def test_current_user_from_token():
    user_id = uuid4()
    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_token(sub=str(user_id)))

    user = await get_current_user(credentials)

    assert user.id == user_id


@pytest.mark.asyncio
@pytest.mark.parametrize("credentials", [
    None,
    HTTPAuthorizationCredentials(scheme="Bearer", credentials="not-a-jwt"),
    HTTPAuthorizationCredentials(scheme="Bearer", credentials=_token(sub="not-a-uuid")),
])
async def test_invalid_credentials_are_401(credentials):
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(credentials)
    assert exc_info.value.status_code == 401
