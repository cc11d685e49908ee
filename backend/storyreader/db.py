from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker, declarative_base


DEFAULT_DATABASE_URL = "sqlite:///./storyreader.db"

Base = declarative_base()


class Database:
	"""Owns the engine and session factory for one process.

	The engine connects lazily, so constructing a Database never touches the
	server; the first query does.
	"""

	def __init__(self, url: str | None = None, *, echo: bool = False) -> None:
		self.url = url or DEFAULT_DATABASE_URL
		connect_args = {"check_same_thread": False} if self.url.startswith("sqlite") else {}
		self.engine = create_engine(self.url, connect_args=connect_args, echo=echo, future=True)
		self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, future=True)

	@property
	def dialect(self) -> str:
		return self.engine.dialect.name

	def create_all(self) -> None:
		# Import registers the tables on Base.metadata
		from . import models  # noqa: F401

		Base.metadata.create_all(bind=self.engine)

	@contextmanager
	def session(self) -> Iterator[Session]:
		db = self.SessionLocal()
		try:
			yield db
			db.commit()
		except Exception:
			db.rollback()
			raise
		finally:
			db.close()

	def insert(self, model):
		"""Dialect-specific INSERT supporting ON CONFLICT clauses."""
		if self.dialect == "sqlite":
			return sqlite.insert(model)
		if self.dialect == "postgresql":
			return postgresql.insert(model)
		raise NotImplementedError(f"atomic upsert is not supported on {self.dialect}")

	def dispose(self) -> None:
		self.engine.dispose()
