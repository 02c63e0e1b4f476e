"""
TinyTask service - main entry point.
All initialization logic is in app/factory.py.
"""
import logging

import uvicorn

from tinytask import config
from tinytask.app.factory import create_app

logger = logging.getLogger(__name__)

# Module-level app so `uvicorn tinytask.main:app` and tests can import it
app = create_app()


def main():
    """Run the service with uvicorn."""
    server = uvicorn.Server(uvicorn.Config(
        app,
        host="0.0.0.0",
        port=config.get_service_port(),
        log_level=config.get_log_level().lower(),
        access_log=True,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    ))
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        logger.info("Service stopped")


if __name__ == "__main__":
    main()
