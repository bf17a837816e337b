from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from medbook.api.responses import (
    handle_domain_error,
    handle_request_validation,
    handle_unexpected,
)
from medbook.api.routes import appointments, doctors, patients
from medbook.config import AppConfig
from medbook.domain.exceptions import MedbookError
from medbook.factory import Services


def create_app(config: AppConfig, services: Services) -> FastAPI:
    """Assemble the HTTP application around already-built services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.start()
        logger.info("Application started (storage={})", services.storage.value)
        yield
        await services.close()

    app = FastAPI(title="Medbook API", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    origins = config.server.origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentialed requests against a wildcard origin.
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MedbookError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)

    app.include_router(appointments.router)
    app.include_router(doctors.router)
    app.include_router(patients.router)

    @app.get("/")
    async def root_health() -> dict[str, str]:
        healthy = await services.health_check()
        return {"status": "ok" if healthy else "degraded", "storage": services.storage.value}

    return app
