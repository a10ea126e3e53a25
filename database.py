from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker
from config import settings
from models import Base
import logging

# Configure logger
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_engine = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

def get_db_connection():
    """Create (once) and return the database engine."""
    global _engine
    if _engine is None:
        if not settings.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable not set")
        _engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
        SessionLocal.configure(bind=_engine)
    return _engine

def get_db():
    """Dependency to get database session."""
    get_db_connection()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def verify_tables_exist():
    """Ensure required tables exist, create if missing."""
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL not set, skipping table verification")
        return

    engine = get_db_connection()
    existing_tables = set(inspect(engine).get_table_names())
    missing = [name for name in Base.metadata.tables if name not in existing_tables]

    if missing:
        logger.info(f"Creating missing tables: {', '.join(missing)}")
        Base.metadata.create_all(bind=engine)
    else:
        logger.info("All tables present")
