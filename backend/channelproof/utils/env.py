"""Environment helpers shared by settings and the database module."""

import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env_file() -> None:
    """Load variables from a local .env file without overriding existing ones.

    WHAT:
        Reads .env into os.environ. Variables already exported win.
    WHY:
        Developers run the API and worker against a local .env, production
        injects real environment variables that must never be overwritten.
    """
    loaded = load_dotenv(override=False)

    if loaded:
        logger.info("Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("No local .env file found or loaded")
