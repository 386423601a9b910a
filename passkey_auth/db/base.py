from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    kwargs = {"pool_pre_ping": True, "echo": False}
    if database_url.startswith("sqlite"):
        # Allow multiple threads; keep a single connection for in-memory databases
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    # Import all models so their tables are registered on Base.metadata
    from passkey_auth.db.models import challenge, credential, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


# Dependency to get a DB session in API endpoints
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
