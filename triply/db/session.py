from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from triply.core.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(url: str):
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a threadpool
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all(bind=None) -> None:
    """Create every table known to the models (no migration tooling)."""
    # Import all models so they are registered on Base.metadata
    from triply.models.user import User  # noqa: F401
    from triply.models.route import Route  # noqa: F401
    from triply.models.schedule import Schedule, ScheduleSeat  # noqa: F401
    from triply.models.booking import Booking  # noqa: F401
    from triply.models.passenger import Passenger  # noqa: F401
    from triply.models.manifest import PassengerManifest, ManifestPassenger  # noqa: F401
    from triply.models.outbox import OutboxEvent  # noqa: F401
    from triply.models.audit_log import AuditLog  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
