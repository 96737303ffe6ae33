"""Authentication helpers for FastAPI endpoints and socket handshakes.

Session issuance lives in the identity service; this module only resolves the
caller from a Bearer JWT (or, in development, from `X-User-Id`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from scholium.settings import settings
from scholium.infra import jwt as jwt_helper


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None
	roles: Tuple[str, ...] = ()
	session_id: Optional[str] = None

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Roles can be list[str] or a comma-separated string.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	display_name = payload.get("name") or payload.get("display_name")
	roles_claim = payload.get("roles") or payload.get("role")
	roles: Tuple[str, ...]
	if isinstance(roles_claim, (list, tuple)):
		roles = tuple(str(r).strip() for r in roles_claim if str(r).strip())
	elif isinstance(roles_claim, str):
		roles = tuple(part.strip() for part in roles_claim.split(",") if part.strip())
	else:
		roles = ()

	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=sub,
		display_name=str(display_name) if display_name is not None else None,
		roles=roles,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


def parse_socket_token(token: str) -> AuthenticatedUser:
	"""Resolve a socket handshake token; raises ValueError when it is unusable."""
	token = (token or "").strip()
	if not token:
		raise ValueError("empty_token")
	try:
		return verify_access_jwt(token)
	except HTTPException as exc:
		raise ValueError("invalid_token") from exc


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		roles = tuple(filter(None, (x_user_roles or "").split(","))) if x_user_roles else ()
		return AuthenticatedUser(id=x_user_id, roles=roles)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


async def get_stream_user(
	request: Request,
	access_token: Optional[str] = Query(default=None),
) -> AuthenticatedUser:
	"""Resolve the caller of a server-sent event stream.

	EventSource cannot set headers, so a token may also arrive as `?access_token=`.
	"""
	if access_token:
		return verify_access_jwt(access_token)
	credentials = await _bearer_scheme(request)
	return await get_current_user(
		x_user_id=request.headers.get("X-User-Id"),
		x_user_roles=request.headers.get("X-User-Roles"),
		credentials=credentials,
	)
