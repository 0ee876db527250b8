from __future__ import annotations

from linerelay.app.api.app import create_app
from linerelay.core.config import load_app_config, load_dotenv_file
from linerelay.core.logging import configure_logging

load_dotenv_file()
config = load_app_config()
configure_logging(config.log_level)

app = create_app(config)
