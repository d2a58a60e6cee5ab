"""Run the Centivo Users API with uvicorn."""

import os

import uvicorn
from loguru import logger

from src.core.config import get_settings
from src.core.logging import setup_logging

# Route uvicorn's own loggers through Loguru
UVICORN_LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {"class": "src.core.logging.InterceptHandler"},
    },
    "loggers": {
        name: {"handlers": ["default"], "level": "INFO", "propagate": False}
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
    },
}


def main() -> None:
    """Start the server, honouring the PORT environment variable."""
    settings = get_settings()
    setup_logging(settings)

    port = int(os.environ.get("PORT", settings.api_port))
    mode = "development mode with auto-reload" if settings.debug else "production mode"
    logger.info("Starting Uvicorn on http://{}:{} ({})", settings.api_host, port, mode)

    # Reload needs the app as an import string
    uvicorn.run(
        "src.api.main:app",
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=UVICORN_LOG_CONFIG,
    )


if __name__ == "__main__":
    main()
