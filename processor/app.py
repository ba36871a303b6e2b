# module processor.app
import logging
import os

from processor.app_setup.factory import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# App globale
app = create_app()
