from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

SessionLocal = sessionmaker(autocommit=False, autoflush=False)
Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    if not database_url:
        raise RuntimeError("STRIPE_SERVICE_DATABASE_URL is not set. Check your .env file.")

    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


def configure_database(database_url: str) -> Engine:
    """Bind the session factory to a new engine and make sure the tables exist."""
    # Imported for its side effect of registering the tables on Base.metadata
    from stripe_gateway import models  # noqa: F401

    engine = create_db_engine(database_url)
    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(bind=engine)
    return engine


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
