"""
Authentication utilities and dependencies
"""
import asyncio
import jwt
import requests
from fastapi import Header
from typing import Optional, Protocol
from .config import settings
from .exceptions import Unauthenticated
from .logger import logger, log_error


class IdentityVerifier(Protocol):
    async def resolve(self, token: str) -> str: ...

    async def user_exists(self, user_id: str) -> bool: ...


class JWTIdentityVerifier:
    """
    Resolves bearer tokens issued by the identity provider.

    Access tokens are HS256 JWTs signed with the provider's secret; the
    subject claim is the user id. User existence is checked against the
    provider's admin API with the service key.
    """

    def __init__(
        self,
        jwt_secret: str,
        audience: Optional[str] = None,
        base_url: str = "",
        service_key: str = "",
        algorithms=("HS256",),
        http_timeout: float = 10,
    ):
        self.jwt_secret = jwt_secret
        self.audience = audience
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.algorithms = list(algorithms)
        self.http_timeout = http_timeout

    def decode(self, token: str) -> Optional[str]:
        """Decode an access token and return user_id"""
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=self.algorithms,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        user_id = payload.get("sub")
        return user_id or None

    async def resolve(self, token: str) -> str:
        user_id = self.decode(token)
        if user_id is None:
            log_error("Invalid or expired token", "auth")
            raise Unauthenticated()
        return user_id

    def _fetch_user(self, user_id: str) -> bool:
        resp = requests.get(
            f"{self.base_url}/auth/v1/admin/users/{user_id}",
            headers={
                "apikey": self.service_key,
                "Authorization": f"Bearer {self.service_key}",
            },
            timeout=self.http_timeout,
        )
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return bool(resp.json().get("id"))

    async def user_exists(self, user_id: str) -> bool:
        logger.debug(f"Looking up user at identity provider: {user_id}")
        return await asyncio.to_thread(self._fetch_user, user_id)


_verifier: Optional[JWTIdentityVerifier] = None


def get_identity_verifier() -> JWTIdentityVerifier:
    global _verifier
    if _verifier is None:
        _verifier = JWTIdentityVerifier(
            jwt_secret=settings.IDENTITY_JWT_SECRET,
            audience=settings.IDENTITY_JWT_AUDIENCE or None,
            base_url=settings.IDENTITY_URL,
            service_key=settings.IDENTITY_SERVICE_KEY,
        )
    return _verifier


async def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Dependency extracting the raw token from 'Authorization: Bearer <token>'
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated("Missing or invalid authorization header")

    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Missing or invalid authorization header")
    return token
