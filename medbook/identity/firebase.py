import re
import time
from typing import Any

import httpx
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from loguru import logger

from medbook.domain.exceptions import AuthenticationError, IdentityUnavailableError
from medbook.domain.models import Identity

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
_DEFAULT_CERT_TTL = 3600.0
_MAX_AGE = re.compile(r"max-age=(\d+)")


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens against Google's published signing certificates.

    Certificates are cached for the ``max-age`` Google advertises and
    refetched once when a token names an unknown key id.
    """

    def __init__(
        self,
        project_id: str,
        *,
        certs_url: str = GOOGLE_CERTS_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._certs_url = certs_url
        self._client = client or httpx.AsyncClient(timeout=10)
        self._certs: dict[str, str] = {}
        self._certs_expire_at: float = 0.0

    @property
    def issuer(self) -> str:
        return f"https://securetoken.google.com/{self._project_id}"

    async def verify(self, token: str) -> Identity:
        if not self._project_id:
            raise AuthenticationError("Identity provider is not configured")

        try:
            header: dict[str, Any] = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise AuthenticationError("Invalid token format") from exc

        if header.get("alg") != "RS256":
            raise AuthenticationError("Invalid token algorithm")
        kid = header.get("kid")
        if not kid:
            raise AuthenticationError("Token missing key ID")

        certificate = await self._certificate(kid)
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                certificate,
                algorithms=["RS256"],
                audience=self._project_id,
                issuer=self.issuer,
            )
        except ExpiredSignatureError as exc:
            raise AuthenticationError("Firebase token has expired") from exc
        except JWTError as exc:
            logger.warning("Firebase token rejected: {}", exc)
            raise AuthenticationError("Invalid or expired Firebase token") from exc

        uid = claims.get("sub")
        if not isinstance(uid, str) or not uid:
            raise AuthenticationError("Token has no subject")
        return Identity(uid=uid, email=claims.get("email"))

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Firebase token verifier closed")

    async def _certificate(self, kid: str) -> str:
        certs = await self._certificates()
        if kid not in certs:
            logger.warning("Key ID {} not in cached certificates, refreshing", kid)
            certs = await self._certificates(refresh=True)
        if kid not in certs:
            raise AuthenticationError("Unable to verify token signature")
        return certs[kid]

    async def _certificates(self, *, refresh: bool = False) -> dict[str, str]:
        if self._certs and not refresh and time.monotonic() < self._certs_expire_at:
            return self._certs

        try:
            resp = await self._client.get(self._certs_url)
            resp.raise_for_status()
            certs: dict[str, str] = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Fetching token signing certificates failed: {}", exc)
            raise IdentityUnavailableError("Identity provider is unavailable") from exc

        match = _MAX_AGE.search(resp.headers.get("cache-control", ""))
        ttl = float(match.group(1)) if match else _DEFAULT_CERT_TTL
        self._certs = certs
        self._certs_expire_at = time.monotonic() + ttl
        logger.info("Fetched {} token signing certificates (ttl={}s)", len(certs), int(ttl))
        return certs
