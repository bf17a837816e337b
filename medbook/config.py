from enum import Enum

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(Enum):
    MONGO = "mongo"
    MEMORY = "memory"


class MongoConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MONGO_", env_file=".env", extra="ignore")

    uri: str = "mongodb://localhost:27017"
    database: str = Field(
        default="medbook",
        validation_alias=AliasChoices("MONGO_DATABASE", "MONGO_DB_NAME"),
    )
    appointments_collection: str = "appointments"
    doctor_profiles_collection: str = "doctorProfiles"
    patient_profiles_collection: str = "patientProfiles"


class FirebaseConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FIREBASE_", env_file=".env", extra="ignore")

    project_id: str = ""
    certs_url: str = (
        "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
    )


class ServerConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SERVER_", env_file=".env", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "http://localhost:3000"

    @property
    def origins(self) -> list[str]:
        raw = self.allowed_origins.strip()
        if raw in {"*", '"*"'}:
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    storage: StorageBackend = Field(
        default=StorageBackend.MONGO,
        validation_alias=AliasChoices("STORAGE_BACKEND", "STORAGE"),
    )
    default_page_size: int = 10
    max_page_size: int = 100
    mongo: MongoConfig = Field(default_factory=lambda: MongoConfig())
    firebase: FirebaseConfig = Field(default_factory=lambda: FirebaseConfig())
    server: ServerConfig = Field(default_factory=lambda: ServerConfig())
