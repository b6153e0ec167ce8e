import logging
import os
from typing import Optional

from pydantic import BaseModel

DEFAULT_API_URL = "http://localhost:3001"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    api_url: str = DEFAULT_API_URL
    timeout: Optional[float] = None  # seconds, None waits forever
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from NPM_AUDIT_* environment variables."""
        timeout = os.environ.get("NPM_AUDIT_TIMEOUT", "").strip()
        return cls(
            api_url=os.environ.get("NPM_AUDIT_API_URL", DEFAULT_API_URL),
            timeout=float(timeout) if timeout else None,
            log_level=os.environ.get("NPM_AUDIT_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
