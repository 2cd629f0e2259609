from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from branchops.core.db.base import Base

log = logging.getLogger("branchops.db")

DEFAULT_DATABASE_URL = "sqlite:///./.branchops/branchops.db"

_LOCK = threading.Lock()
_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None


def database_url() -> str:
    url = (os.getenv("BRANCHOPS_DATABASE_URL") or os.getenv("DATABASE_URL") or "").strip()
    return url or DEFAULT_DATABASE_URL


def _make_engine(url: str) -> Engine:
    kwargs = {"future": True}
    if url.startswith("sqlite"):
        # sqlite file must exist in a writable directory; TestClient runs sync handlers in threads
        path = url.split("///", 1)[-1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


def get_engine() -> Engine:
    global _ENGINE, _SESSION_FACTORY
    with _LOCK:
        if _ENGINE is None:
            url = database_url()
            _ENGINE = _make_engine(url)
            _SESSION_FACTORY = sessionmaker(bind=_ENGINE, expire_on_commit=False)
            log.info("database engine created dialect=%s", _ENGINE.dialect.name)
        return _ENGINE


def reset_engine() -> None:
    """Drop the cached engine so the next call re-reads BRANCHOPS_DATABASE_URL."""
    global _ENGINE, _SESSION_FACTORY
    with _LOCK:
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = None
        _SESSION_FACTORY = None


def init_db() -> None:
    # registers every mapped class and reporting table on Base.metadata
    from branchops.core.db import models  # noqa: F401
    from branchops.core.reporting import tables  # noqa: F401

    Base.metadata.create_all(get_engine())


def new_session() -> Session:
    get_engine()
    assert _SESSION_FACTORY is not None
    return _SESSION_FACTORY()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request. Services commit their own writes."""
    db = new_session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
