from typing import Optional

from fastapi import Header, Request
from jose import JWTError, jwt

from .errors import Unauthorized

ALGORITHMS = ["HS256"]


def verify_token(token: str, secret: str) -> str:
    """Return the user id carried by a signed token."""
    try:
        claims = jwt.decode(token, secret, algorithms=ALGORITHMS)
    except JWTError:
        raise Unauthorized("Invalid token")

    user_id = claims.get("userId") or claims.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token")
    return str(user_id)


def current_user_id(request: Request, authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized()
    token = authorization[len("Bearer "):].strip()
    return verify_token(token, request.app.state.settings.jwt_secret)
