from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from uuid import UUID

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from loguru import logger

from hallbookings import settings
from hallbookings.access import Actor
from hallbookings.crud import user_crud
from hallbookings.errors import AuthError, NotFoundError
from hallbookings.notifications import Mailer, MailerConfig

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """Identity proven by the bearer token, before the users table is consulted."""

    id: UUID
    email: str | None = None


# ---------------------------------------------------------------------------
# Session tokens issued by this service (HS256)
# ---------------------------------------------------------------------------


def create_session_token(user_id: UUID, email: str, role: str) -> str:
    expires = datetime.now(UTC) + timedelta(hours=settings.SESSION_TOKEN_TTL_HOURS)
    claims = {"uid": str(user_id), "email": email, "role": role, "exp": expires}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_session_token(token: str) -> Principal | None:
    """Returns None for anything that isn't a valid, unexpired session token."""
    try:
        claims = jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM]
        )
        return Principal(id=UUID(claims["uid"]), email=claims.get("email"))
    except (JWTError, KeyError, ValueError, TypeError):
        return None


# ---------------------------------------------------------------------------
# IdentityProviderClient — thin async wrapper around the external IdP
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_idp_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(5.0), follow_redirects=True)


class IdentityProviderClient:
    """
    Verifies tokens minted by the external identity provider.
    Any transport or protocol failure counts as "not verified".
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_idp_http_client()

    async def verify(self, token: str) -> Principal | None:
        try:
            resp = await self._client.post(
                settings.idp_verify_url, json={"id_token": token}
            )
            if resp.status_code >= 400:
                return None
            data = resp.json()
            return Principal(id=UUID(str(data["uid"])), email=data.get("email"))
        except (httpx.RequestError, ValueError, KeyError):
            logger.warning("Identity provider verification failed", exc_info=True)
            return None


_identity_client = IdentityProviderClient()


def get_identity_client() -> IdentityProviderClient:
    return _identity_client


# ---------------------------------------------------------------------------
# Request-scoped dependencies
# ---------------------------------------------------------------------------


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
) -> Principal:
    """Session token first, identity provider second."""
    if credentials is None or not credentials.credentials:
        raise AuthError("No token provided")

    token = credentials.credentials
    principal = decode_session_token(token)
    if principal is None:
        principal = await identity_client.verify(token)
    if principal is None:
        raise AuthError("Invalid token")
    return principal


async def get_actor(principal: Principal = Depends(get_current_principal)) -> Actor:
    """Loads role and parent from the users table."""
    user = await user_crud.get_user(principal.id)
    if user is None:
        raise NotFoundError("User not found")
    return Actor(
        id=user.id,
        email=user.email,
        role=user.role,
        parent_user_id=user.parent_user_id,
    )


@lru_cache(maxsize=1)
def get_mailer() -> Mailer:
    return Mailer(MailerConfig.from_settings())


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
