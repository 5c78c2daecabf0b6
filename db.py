from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DB_URL

Base = declarative_base()


def make_engine(url: str = DB_URL):
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # satu koneksi bersama supaya tabel in-memory tidak hilang
            return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
