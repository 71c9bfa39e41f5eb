from __future__ import annotations

import logging

from mafia_server.application import create_app
from mafia_server.config import settings

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

app = create_app()
