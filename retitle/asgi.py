"""ASGI entry point: ``hypercorn retitle.asgi:app``."""

import logging

from retitle.app_factory import create_app
from retitle.config import get_settings

logging.basicConfig(level=get_settings().log_level)

app = create_app()
