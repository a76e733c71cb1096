# app/db.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config import settings

_connect_args = {}
if settings.database_url.startswith("sqlite"):
    # SQLite (solo dev/test): la stessa connessione può passare tra thread
    _connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency FastAPI: una sessione per richiesta, chiusa sempre a fine richiesta.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
