#!/usr/bin/env python
"""Server startup script - reads host/port from the environment."""
import os

import uvicorn

from muni_ingest.api import app
from muni_ingest.logging_utils import configure_from
from muni_ingest.logic.config_manager import get_config

if __name__ == "__main__":
    config = get_config()
    configure_from(config)
    port = int(os.environ.get("PORT", config["server_port"]))
    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=port)
