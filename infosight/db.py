"""
Database engine construction and table creation.
"""

import logging

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from infosight.config import Config
# Import models so their tables register on SQLModel.metadata
from infosight.api.models import Submission, KPIDefinition  # noqa: F401

logger = logging.getLogger(__name__)


def build_engine(config: Config):
    """Create the SQLAlchemy engine for config.database_url."""
    url = config.database_url
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def init_db(engine) -> None:
    """Create all tables if they don't exist."""
    logger.info(f"Initializing database at {engine.url}")
    SQLModel.metadata.create_all(engine)
