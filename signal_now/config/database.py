"""Database engine and session configuration"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from signal_now.config.settings import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create tables for all registered models"""
    import signal_now.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    init_db()
