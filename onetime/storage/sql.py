"""Relational backend: SQLAlchemy asyncio over SQLite (aiosqlite) or PostgreSQL (asyncpg)."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

from sqlalchemy import BigInteger, ForeignKey, LargeBinary, String, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from onetime.config import Settings
from onetime.errors import (
    AlreadyClaimed,
    FileAlreadyExists,
    FileNotFound,
    LinkNotFound,
    OnetimeError,
    StorageError,
    TokenCollision,
)
from onetime.storage.base import File, FileInfo, Link, StorageProvider

log = logging.getLogger(__name__)

Base = declarative_base()


class FileRow(Base):
    """File table: filename is primary key."""

    __tablename__ = "files"

    filename: Mapped[str] = mapped_column(String(255), primary_key=True)
    contents: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class LinkRow(Base):
    """Link table: token is primary key; downloaded_at NULL = unused."""

    __tablename__ = "links"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    filename: Mapped[str] = mapped_column(
        String(255), ForeignKey("files.filename"), nullable=False, index=True
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    downloaded_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    # Long enough for IPv6
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


def _to_file(row: FileRow) -> File:
    return File(
        filename=row.filename,
        contents=bytes(row.contents),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_link(row: LinkRow) -> Link:
    return Link(
        token=row.token,
        filename=row.filename,
        created_at=row.created_at,
        downloaded_at=row.downloaded_at,
        ip_address=row.ip_address,
    )


class SqlStorage(StorageProvider):
    """
    Storage on a transactional database. The claim is one conditional UPDATE
    (... WHERE downloaded_at IS NULL RETURNING filename), so row-level atomicity in the
    database decides the single winner.
    """

    name = "sql"

    def __init__(self, database_url: str, timeout: float = 10.0) -> None:
        kwargs = {}
        if database_url.startswith("sqlite"):
            # sqlite busy handler: wait for the write lock instead of failing at once
            kwargs["connect_args"] = {"timeout": timeout}
        else:
            kwargs["pool_timeout"] = timeout
        self._engine = create_async_engine(database_url, echo=False, **kwargs)
        self._async_session = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlStorage":
        return cls(settings.database_url, timeout=settings.storage_timeout_seconds)

    async def init(self) -> None:
        """Create tables if they do not exist."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Error initializing tables: {e}") from e

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """One transaction per operation: commit on success, roll back on any error."""
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except OnetimeError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                log.error("%s failed: %s", operation, e)
                raise StorageError(f"{operation} failed: {e}") from e

    async def put_file(self, filename: str, contents: bytes, now: int) -> None:
        async with self._session("put_file") as session:
            try:
                await session.execute(
                    insert(FileRow).values(
                        filename=filename, contents=contents, created_at=now, updated_at=now
                    )
                )
            except IntegrityError as e:
                raise FileAlreadyExists(filename) from e

    async def get_file(self, filename: str) -> File:
        async with self._session("get_file") as session:
            row = await session.get(FileRow, filename)
            if row is None:
                raise FileNotFound(filename)
            return _to_file(row)

    async def list_files(self) -> List[FileInfo]:
        async with self._session("list_files") as session:
            result = await session.execute(
                select(
                    FileRow.filename,
                    func.length(FileRow.contents),
                    FileRow.created_at,
                    FileRow.updated_at,
                ).order_by(FileRow.created_at, FileRow.filename)
            )
            return [
                FileInfo(filename=r[0], size=r[1], created_at=r[2], updated_at=r[3])
                for r in result.all()
            ]

    async def put_link(self, token: str, filename: str, now: int) -> Link:
        async with self._session("put_link") as session:
            exists = await session.scalar(
                select(FileRow.filename).where(FileRow.filename == filename)
            )
            if exists is None:
                raise FileNotFound(filename)
            try:
                await session.execute(
                    insert(LinkRow).values(token=token, filename=filename, created_at=now)
                )
            except IntegrityError as e:
                raise TokenCollision(token) from e
        return Link(token=token, filename=filename, created_at=now)

    async def get_link(self, token: str) -> Link:
        async with self._session("get_link") as session:
            row = await session.get(LinkRow, token)
            if row is None:
                raise LinkNotFound(token)
            return _to_link(row)

    async def list_links(self) -> List[Link]:
        async with self._session("list_links") as session:
            result = await session.execute(
                select(LinkRow).order_by(LinkRow.created_at, LinkRow.token)
            )
            return [_to_link(r) for r in result.scalars().all()]

    async def list_links_for_file(self, filename: str) -> List[Link]:
        async with self._session("list_links_for_file") as session:
            result = await session.execute(
                select(LinkRow)
                .where(LinkRow.filename == filename)
                .order_by(LinkRow.created_at, LinkRow.token)
            )
            return [_to_link(r) for r in result.scalars().all()]

    async def claim_link(self, token: str, now: int, ip_address: Optional[str]) -> File:
        async with self._session("claim_link") as session:
            result = await session.execute(
                update(LinkRow)
                .where(LinkRow.token == token, LinkRow.downloaded_at.is_(None))
                .values(downloaded_at=now, ip_address=ip_address)
                .returning(LinkRow.filename)
                .execution_options(synchronize_session=False)
            )
            filename = result.scalar_one_or_none()
            if filename is None:
                # No row transitioned: tell absent from already claimed
                existing = await session.scalar(
                    select(LinkRow.token).where(LinkRow.token == token)
                )
                if existing is None:
                    raise LinkNotFound(token)
                raise AlreadyClaimed(token)
            row = await session.get(FileRow, filename)
            if row is None:
                # Raising rolls the claim back with the transaction
                log.error("Link %s... references missing file %s", token[:8], filename)
                raise FileNotFound(filename)
            return _to_file(row)
