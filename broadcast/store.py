"""Explicit store handle passed to every component."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from broadcast import models  # noqa: F401  registers every table on Base.metadata
from broadcast.db import Base, make_engine
from broadcast.integrity import DEFAULT_RULES, ReferenceRule

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, engine: Engine, rules: Iterable[ReferenceRule] = DEFAULT_RULES) -> None:
        self.engine = engine
        self.rules: tuple[ReferenceRule, ...] = tuple(rules)
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One atomic unit of work: commit on success, roll back on any error."""

        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def create_store(
    url: str,
    *,
    rules: Iterable[ReferenceRule] = DEFAULT_RULES,
    create_tables: bool = True,
    echo: bool = False,
) -> Store:
    store = Store(make_engine(url, echo=echo), rules=rules)
    if create_tables:
        store.create_all()
        logger.info("Store ready url=%s", store.engine.url.render_as_string(hide_password=True))
    return store
