from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from medbook.appointments.commands import AppointmentCommands
from medbook.domain.exceptions import AuthenticationError
from medbook.domain.models import Identity
from medbook.factory import Services
from medbook.profiles.service import DoctorProfileService, PatientProfileService

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_appointments(services: Services = Depends(get_services)) -> AppointmentCommands:
    return services.appointments


def get_doctors(services: Services = Depends(get_services)) -> DoctorProfileService:
    return services.doctors


def get_patients(services: Services = Depends(get_services)) -> PatientProfileService:
    return services.patients


async def get_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Identity:
    """Resolve the caller from the ``Authorization: Bearer <token>`` header."""
    if credentials is None or not credentials.credentials:
        logger.warning("Missing or malformed Authorization header")
        raise AuthenticationError(
            'Authorization header is missing or malformed. Expected "Bearer <token>".'
        )
    identity = await services.verifier.verify(credentials.credentials)
    logger.debug("Token verified for uid={}", identity.uid)
    return identity
