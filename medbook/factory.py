from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient

from medbook.appointments.commands import AppointmentCommands
from medbook.appointments.repository import AppointmentRepository
from medbook.appointments.service import AppointmentService
from medbook.config import AppConfig, StorageBackend
from medbook.domain.models import Appointment, DoctorProfile, PatientProfile
from medbook.identity.firebase import FirebaseTokenVerifier
from medbook.identity.ports import TokenVerifier
from medbook.profiles.service import DoctorProfileService, PatientProfileService
from medbook.storage.adapters.memory import InMemoryDocumentStore
from medbook.storage.adapters.mongo import MongoDocumentStore
from medbook.storage.ports import DocumentStore


@dataclass
class Stores:
    appointments: DocumentStore[Appointment]
    doctors: DocumentStore[DoctorProfile]
    patients: DocumentStore[PatientProfile]
    release: Callable[[], None] = lambda: None


@dataclass
class Services:
    """Everything the HTTP layer needs, built once per process."""

    appointments: AppointmentCommands
    doctors: DoctorProfileService
    patients: PatientProfileService
    verifier: TokenVerifier
    storage: StorageBackend
    _on_close: list[Callable[[], None]] = field(default_factory=list)

    async def start(self) -> None:
        await self.appointments.service.ensure_indexes()
        await self.doctors.ensure_indexes()
        await self.patients.ensure_indexes()

    async def health_check(self) -> bool:
        return await self.appointments.service.health_check()

    async def close(self) -> None:
        try:
            await self.appointments.service.close()
            await self.doctors.close()
            await self.patients.close()
            await self.verifier.close()
        finally:
            # Shared clients are released even if a service failed to close.
            for release in self._on_close:
                release()
            logger.info("Services closed")


def _build_mongo(config: AppConfig) -> Stores:
    client: AsyncIOMotorClient = AsyncIOMotorClient(config.mongo.uri, tz_aware=True)
    db = client[config.mongo.database]
    return Stores(
        appointments=MongoDocumentStore(
            db[config.mongo.appointments_collection],
            Appointment,
            indexes=[
                (("doctorId", 1), ("date", 1), ("status", 1)),
                (("patientId", 1), ("status", 1)),
            ],
        ),
        doctors=MongoDocumentStore(
            db[config.mongo.doctor_profiles_collection],
            DoctorProfile,
            indexes=[(("userId", 1),), (("specialty", 1),), (("location", 1),)],
        ),
        patients=MongoDocumentStore(
            db[config.mongo.patient_profiles_collection],
            PatientProfile,
            indexes=[(("userId", 1),)],
        ),
        release=client.close,
    )


def _build_memory(config: AppConfig) -> Stores:
    return Stores(
        appointments=InMemoryDocumentStore(Appointment),
        doctors=InMemoryDocumentStore(DoctorProfile),
        patients=InMemoryDocumentStore(PatientProfile),
    )


_BUILDERS: dict[StorageBackend, Callable[[AppConfig], Stores]] = {
    StorageBackend.MONGO: _build_mongo,
    StorageBackend.MEMORY: _build_memory,
}


def build_services(
    config: AppConfig,
    *,
    stores: Stores | None = None,
    verifier: TokenVerifier | None = None,
) -> Services:
    """Build the services for the configured storage backend.

    ``stores`` and ``verifier`` override the configured ones, mainly for tests.
    """
    if stores is None:
        logger.info("Building services with storage backend: {}", config.storage.value)
        stores = _BUILDERS[config.storage](config)

    if verifier is None:
        verifier = FirebaseTokenVerifier(
            config.firebase.project_id, certs_url=config.firebase.certs_url
        )

    paging = {
        "default_page_size": config.default_page_size,
        "max_page_size": config.max_page_size,
    }
    service = AppointmentService(AppointmentRepository(stores.appointments), **paging)
    return Services(
        appointments=AppointmentCommands(service),
        doctors=DoctorProfileService(stores.doctors, **paging),
        patients=PatientProfileService(stores.patients, **paging),
        verifier=verifier,
        storage=config.storage,
        _on_close=[stores.release],
    )
