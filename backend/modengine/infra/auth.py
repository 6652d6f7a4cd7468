"""Caller identity for the moderation API.

A bearer JWT names the caller in its ``sub`` claim. Outside production-like
environments the ``X-User-Id`` header is accepted as well. Only identity is
taken from the request: roles are always looked up through the identity
provider when an operation authorizes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from modengine.infra import jwt as jwt_helper
from modengine.obs.logging import bind_context
from modengine.settings import settings

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
	id: str


def _unauthenticated() -> HTTPException:
	return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def user_from_token(token: str) -> AuthenticatedUser:
	try:
		claims = jwt_helper.decode_access(token)
	except InvalidTokenError:
		raise _unauthenticated()
	return AuthenticatedUser(id=str(claims["sub"]).strip())


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> AuthenticatedUser:
	if credentials is not None:
		user = user_from_token(credentials.credentials)
	elif settings.is_dev() and x_user_id and x_user_id.strip():
		user = AuthenticatedUser(id=x_user_id.strip())
	else:
		raise _unauthenticated()
	bind_context(user_id=user.id)
	return user
