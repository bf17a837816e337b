import datetime as dt
import time
from typing import Any

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from jose import jwt
from pytest_httpx import HTTPXMock

from medbook.domain.exceptions import AuthenticationError, IdentityUnavailableError
from medbook.identity.firebase import FirebaseTokenVerifier

PROJECT_ID = "medbook-test"
CERTS_URL = "https://certs.test/securetoken"
KID = "key-1"


def _signing_pair() -> tuple[str, str]:
    """Generate an RSA private key and a self-signed certificate for it, both PEM."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.test")])
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return private_pem, cert.public_bytes(serialization.Encoding.PEM).decode()


PRIVATE_KEY, CERTIFICATE = _signing_pair()


def _token(*, kid: str = KID, **overrides: Any) -> str:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": PROJECT_ID,
        "sub": "uid-123",
        "email": "ana@example.com",
        "iat": now,
        "auth_time": now,
        "exp": now + 3600,
        **overrides,
    }
    return jwt.encode(claims, PRIVATE_KEY, algorithm="RS256", headers={"kid": kid})


@pytest.fixture
def verifier() -> FirebaseTokenVerifier:
    return FirebaseTokenVerifier(PROJECT_ID, certs_url=CERTS_URL)


class TestVerify:
    @pytest.mark.asyncio
    async def test_valid_token_yields_identity(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, json={KID: CERTIFICATE})

        identity = await verifier.verify(_token())

        assert identity.uid == "uid-123"
        assert identity.email == "ana@example.com"

    @pytest.mark.asyncio
    async def test_certificates_are_cached(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=CERTS_URL,
            json={KID: CERTIFICATE},
            headers={"Cache-Control": "public, max-age=19000"},
        )

        await verifier.verify(_token())
        await verifier.verify(_token(sub="uid-456"))

        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_unknown_key_id_triggers_refresh(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, json={"old-key": CERTIFICATE})
        httpx_mock.add_response(url=CERTS_URL, json={KID: CERTIFICATE})

        identity = await verifier.verify(_token())

        assert identity.uid == "uid-123"
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_expired_token(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, json={KID: CERTIFICATE})
        past = int(time.time()) - 7200

        with pytest.raises(AuthenticationError, match="expired"):
            await verifier.verify(_token(iat=past, auth_time=past, exp=past + 3600))

    @pytest.mark.asyncio
    async def test_wrong_audience(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, json={KID: CERTIFICATE})

        with pytest.raises(AuthenticationError, match="Invalid or expired Firebase token"):
            await verifier.verify(_token(aud="another-project"))

    @pytest.mark.asyncio
    async def test_wrong_issuer(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, json={KID: CERTIFICATE})

        with pytest.raises(AuthenticationError):
            await verifier.verify(_token(iss="https://evil.test"))

    @pytest.mark.asyncio
    async def test_rejects_non_rsa_algorithms_without_fetching(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        token = jwt.encode({"sub": "uid-123"}, "shared", algorithm="HS256", headers={"kid": KID})

        with pytest.raises(AuthenticationError, match="algorithm"):
            await verifier.verify(token)
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_rejects_garbage(self, verifier: FirebaseTokenVerifier) -> None:
        with pytest.raises(AuthenticationError, match="format"):
            await verifier.verify("not-a-jwt")

    @pytest.mark.asyncio
    async def test_certificate_server_error_is_unavailable(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, status_code=503)

        with pytest.raises(IdentityUnavailableError, match="unavailable"):
            await verifier.verify(_token())

    @pytest.mark.asyncio
    async def test_certificate_timeout_is_unavailable(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_exception(httpx.ConnectTimeout("down"), url=CERTS_URL)

        with pytest.raises(IdentityUnavailableError) as excinfo:
            await verifier.verify(_token())

        assert excinfo.value.kind == "Unavailable"
        assert "down" not in excinfo.value.message

    @pytest.mark.asyncio
    async def test_unknown_key_after_refresh_is_rejected(
        self, verifier: FirebaseTokenVerifier, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=CERTS_URL, json={"old-key": CERTIFICATE})
        httpx_mock.add_response(url=CERTS_URL, json={"older-key": CERTIFICATE})

        with pytest.raises(AuthenticationError, match="Unable to verify token signature"):
            await verifier.verify(_token())

    @pytest.mark.asyncio
    async def test_unconfigured_project(self) -> None:
        verifier = FirebaseTokenVerifier("", certs_url=CERTS_URL)

        with pytest.raises(AuthenticationError, match="not configured"):
            await verifier.verify(_token())
        await verifier.close()
