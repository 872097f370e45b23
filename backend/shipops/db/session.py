"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import logging

from shipops.core.config import settings

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if settings.is_sqlite else {}

logger.info(f"Database connection: {settings.DATABASE_URL.split('@')[-1]}")

# Create engine
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,  # Set to True for SQL query logging
    pool_pre_ping=True,  # Verify connections before using
    pool_recycle=3600,  # Recycle connections after 1 hour
    connect_args=connect_args,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/shipments/{shipment_id}")
        def get_shipment(shipment_id: int, db: Session = Depends(get_db)):
            return db.query(Shipment).get(shipment_id)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables known to the declarative Base."""
    from shipops.db.base import Base
    import shipops.models  # noqa: F401  registers the models on Base.metadata

    Base.metadata.create_all(bind=engine)
