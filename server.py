import uvicorn
from loguru import logger

from medbook.api.app import create_app
from medbook.config import AppConfig
from medbook.factory import build_services


def main() -> None:
    logger.info("Starting Medbook API")

    config = AppConfig()
    services = build_services(config)
    app = create_app(config, services)

    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
