# storefront/database.py
import logging

from flask import current_app, g
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(config) -> Engine:
    url = config.DATABASE_URL
    engine_kwargs = {
        "echo": config.SQL_ECHO,
        "future": True,
        "pool_pre_ping": True,
    }

    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url == "sqlite://":
            # One shared connection so every session sees the same in-memory database
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = config.DB_POOL_SIZE
        engine_kwargs["max_overflow"] = config.DB_MAX_OVERFLOW

    return create_engine(url, **engine_kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True)


def init_database(engine: Engine) -> None:
    """Create any missing tables."""
    # Import models so every table is registered on Base.metadata
    from storefront import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized successfully")


def get_db():
    if 'db' not in g:
        session_factory = current_app.extensions["storefront"].session_factory
        g.db = session_factory()
    return g.db


def close_db(e=None):
    try:
        db = g.pop('db', None)
        if db is not None:
            if e is not None:
                db.rollback()
            db.close()
    except RuntimeError:
        # Outside of an application context, e.g. during test teardown
        pass
