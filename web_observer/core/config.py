import os
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

SDK_VERSION = "0.3.0"
SDK_LANGUAGE = "python"

# Remote execution service
API_URL = os.getenv("WEB_OBSERVER_API_URL", "https://api.stagehand.browserbase.com/v1")
DEFAULT_REGION = "us-west-2"
STREAM_RECORD_PREFIX = "data: "

# DOM settling
DOM_SETTLE_TIMEOUT_MS = 30_000
DOM_SETTLE_QUIET_MS = 500
WAIT_UNTIL_TRUTHY_TIMEOUT_MS = 3_000

# Observation
NOT_SUPPORTED = "not-supported"
DEFAULT_OBSERVE_INSTRUCTION = (
    "Find elements that can be used for any future actions in the page. "
    "These may be navigation links, related pages, section/subsection links, "
    "buttons, or other interactive elements. Be comprehensive: if there are "
    "multiple elements that may be relevant for future actions, return all of them."
)

# Model defaults
DEFAULT_TEMPERATURE = 0.1
DEFAULT_TIMEOUT_S = 60
DEFAULT_MAX_RETRIES = 1


def get_env_var(name: str, required: bool = True) -> Optional[str]:
    """Read an environment variable, raising if it is required and missing."""
    value = os.getenv(name)
    if not value and required:
        raise ConfigurationError(f"{name} not found in environment variables")
    return value
