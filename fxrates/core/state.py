from datetime import datetime
import pytz

from fxrates.core.constants import *


class State:
    """Holds the runtime configuration dictionary"""

    def __init__(self, config):
        if config is None:
            raise ValueError("config is REQUIRED")

        self.config = config

    def get_config_value(self, key: str):
        return self.config.get(key)

    def get_timezone(self):
        timezone = self.get_config_value(CONFIG_TIMEZONE) or DEFAULT_TIMEZONE
        return pytz.timezone(timezone)

    def today(self):
        """Current calendar date in the configured timezone"""
        return datetime.now(self.get_timezone()).date()
