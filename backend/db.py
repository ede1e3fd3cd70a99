import logging

from sqlmodel import Session, SQLModel, create_engine

import config

logger = logging.getLogger(__name__)


def resolve_database_url() -> str:
    """Pick the playtime store: DATABASE_URL, else SQLite outside production."""
    url = config.DATABASE_URL
    if not url:
        if config.ENV in ("prod", "production"):
            raise RuntimeError(
                "DATABASE_URL missing in production; refusing to store playtime in SQLite. "
                "Please configure DATABASE_URL environment variable."
            )
        url = f"sqlite:///{config.DATABASE_PATH}"

    # SQLAlchemy only knows the postgresql:// scheme
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


DATABASE_URL = resolve_database_url()
logger.info(f"DB_URL_DRIVER={DATABASE_URL.split(':', 1)[0]}")

engine = create_engine(DATABASE_URL, echo=False)


def is_postgres(bind=None) -> bool:
    """Check if the given bind (or the default engine) is PostgreSQL."""
    bind = bind if bind is not None else engine
    return bind.dialect.name == "postgresql"


def create_db_and_tables():
    """Create database and tables if they don't exist.
    This is safe to call multiple times - it won't wipe existing data.
    """
    # Register table models on the metadata before create_all
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session
