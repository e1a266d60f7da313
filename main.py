import uvicorn
from loguru import logger

from bloodbank.api.app import configure_logging, create_app
from bloodbank.config import AppConfig

config = AppConfig()
configure_logging(config.log_level)
app = create_app(config)


if __name__ == "__main__":
    logger.info("Starting blood bank appointment API on {}:{}", config.server.host, config.server.port)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.log_level.lower(),
    )
