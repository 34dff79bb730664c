# Export surface for scripts / throwaway schema creation

from .session import engine, SessionLocal, get_db, dispose_engine
from app.db.model import *  # load every model into Base.metadata
from .base import Base


"""
    Quick schema on an empty dev/sqlite database:
        python -c "from app.db import create_all; create_all()"
    Production uses `alembic upgrade head` (order_items is range-partitioned there).
"""
def create_all() -> None:
    Base.metadata.create_all(bind=engine)
