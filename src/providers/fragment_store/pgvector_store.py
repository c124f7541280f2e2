"""PostgreSQL + pgvector fragment store.

Two tables live in one schema (``wiki_rag`` by default)::

    fragment(fragment_id serial, document_id, display_text, index_text,
             embedding vector(N) NULL, updated_at)
    question(question_id serial, fragment_id -> fragment ON DELETE CASCADE,
             document_id, text, embedding vector(N) NULL, updated_at)

Each ``embedding`` column carries an ivfflat ``vector_cosine_ops`` index and
each ``document_id`` a b-tree index.  Similarity queries use pgvector's
``<=>`` cosine-distance operator, skip NULL embeddings and keep rows whose
distance is at most the caller's threshold.

Writes for one document go through :meth:`PgVectorFragmentStore.replace_document`,
a single transaction in which every insert runs inside its own savepoint.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Select,
    Table,
    Text,
    delete,
    func,
    insert,
    literal,
    select,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.schema import CreateSchema

from src.config.components import StoreConfig
from src.interfaces.fragment_store import IFragmentStore, IFragmentWriter
from src.models.rag import Collection, NeighborRow, StoreStats
from src.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "pgvector"


class FragmentTables:
    """SQLAlchemy Core table definitions for one schema and vector size."""

    def __init__(self, schema: str, dimensions: int, ivfflat_lists: int = 100) -> None:
        self.metadata = MetaData(schema=schema)
        self.fragment = Table(
            "fragment",
            self.metadata,
            Column("fragment_id", Integer, primary_key=True, autoincrement=True),
            Column("document_id", Text, nullable=False),
            Column("display_text", Text, nullable=False),
            Column("index_text", Text, nullable=False),
            Column("embedding", Vector(dimensions), nullable=True),
            Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
            Index("ix_fragment_document_id", "document_id"),
            Index(
                "ix_fragment_embedding_cosine",
                "embedding",
                postgresql_using="ivfflat",
                postgresql_with={"lists": ivfflat_lists},
                postgresql_ops={"embedding": "vector_cosine_ops"},
            ),
        )
        self.question = Table(
            "question",
            self.metadata,
            Column("question_id", Integer, primary_key=True, autoincrement=True),
            Column(
                "fragment_id",
                Integer,
                ForeignKey(f"{schema}.fragment.fragment_id", ondelete="CASCADE"),
                nullable=False,
            ),
            Column("document_id", Text, nullable=False),
            Column("text", Text, nullable=False),
            Column("embedding", Vector(dimensions), nullable=True),
            Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
            Index("ix_question_document_id", "document_id"),
            Index("ix_question_fragment_id", "fragment_id"),
            Index(
                "ix_question_embedding_cosine",
                "embedding",
                postgresql_using="ivfflat",
                postgresql_with={"lists": ivfflat_lists},
                postgresql_ops={"embedding": "vector_cosine_ops"},
            ),
        )

    @staticmethod
    def document_lock(document_id: str) -> Select:
        """Transaction-scoped advisory lock keyed on the document identifier.

        Held until commit or rollback, so two writers for the same document
        run their delete-then-insert one after the other.
        """
        return select(func.pg_advisory_xact_lock(func.hashtext(literal(document_id))))

    def neighbor_query(
        self,
        collection: Collection,
        vector: list[float],
        max_distance: float,
        limit: int | None = None,
    ) -> Select:
        """Build the nearest-neighbor SELECT for *collection*.

        Columns: ``fragment_id, document_id, display_text, question, distance``.
        """
        fragment = self.fragment
        if collection is Collection.FRAGMENT:
            distance = fragment.c.embedding.cosine_distance(vector)
            stmt = (
                select(
                    fragment.c.fragment_id,
                    fragment.c.document_id,
                    fragment.c.display_text,
                    literal(None, Text).label("question"),
                    distance.label("distance"),
                )
                .where(fragment.c.embedding.is_not(None))
                .where(distance <= max_distance)
                .order_by(distance, fragment.c.fragment_id)
            )
        else:
            question = self.question
            distance = question.c.embedding.cosine_distance(vector)
            stmt = (
                select(
                    question.c.fragment_id,
                    question.c.document_id,
                    fragment.c.display_text,
                    question.c.text.label("question"),
                    distance.label("distance"),
                )
                .select_from(
                    question.join(fragment, question.c.fragment_id == fragment.c.fragment_id)
                )
                .where(question.c.embedding.is_not(None))
                .where(distance <= max_distance)
                .order_by(distance, question.c.fragment_id)
            )
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt


class _PgFragmentWriter(IFragmentWriter):
    """Unit-of-work writer bound to one open connection/transaction."""

    def __init__(self, conn: AsyncConnection, tables: FragmentTables, document_id: str) -> None:
        self._conn = conn
        self._tables = tables
        self._document_id = document_id

    @property
    def document_id(self) -> str:
        return self._document_id

    async def delete_document(self) -> int:
        fragment = self._tables.fragment
        result = await self._conn.execute(
            delete(fragment).where(fragment.c.document_id == self._document_id)
        )
        return result.rowcount or 0

    async def insert_fragment(
        self, display_text: str, index_text: str, vector: list[float] | None
    ) -> int:
        fragment = self._tables.fragment
        stmt = (
            insert(fragment)
            .values(
                document_id=self._document_id,
                display_text=display_text,
                index_text=index_text,
                embedding=vector,
            )
            .returning(fragment.c.fragment_id)
        )
        return await self._insert_in_savepoint(stmt, "fragment")

    async def insert_question(
        self, fragment_id: int, text: str, vector: list[float] | None
    ) -> int:
        question = self._tables.question
        stmt = (
            insert(question)
            .values(
                fragment_id=fragment_id,
                document_id=self._document_id,
                text=text,
                embedding=vector,
            )
            .returning(question.c.question_id)
        )
        return await self._insert_in_savepoint(stmt, "question")

    async def _insert_in_savepoint(self, stmt: Any, kind: str) -> int:
        try:
            async with self._conn.begin_nested():
                result = await self._conn.execute(stmt)
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Failed to insert {kind} for document {self._document_id}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc


class PgVectorFragmentStore(IFragmentStore):
    """Fragment store on PostgreSQL with the pgvector extension.

    Parameters
    ----------
    config:
        Connection, schema and vector-size settings.
    engine:
        Optional pre-built async engine; one is created from *config* otherwise.
    """

    def __init__(self, config: StoreConfig, engine: AsyncEngine | None = None) -> None:
        self._config = config
        self._tables = FragmentTables(config.schema_name, config.dimensions, config.ivfflat_lists)
        self._engine = engine or create_async_engine(
            config.url(),
            pool_size=config.pool_size,
            pool_pre_ping=True,
        )

    @property
    def tables(self) -> FragmentTables:
        return self._tables

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_database_exists(self) -> bool:
        """Create the configured database when missing; return ``True`` if created.

        Connects to the ``postgres`` maintenance database in autocommit mode,
        since ``CREATE DATABASE`` cannot run inside a transaction.
        """
        admin_engine = create_async_engine(
            self._config.url("postgres"), isolation_level="AUTOCOMMIT"
        )
        try:
            async with admin_engine.connect() as conn:
                exists = await conn.scalar(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"),
                    {"name": self._config.database},
                )
                if exists:
                    return False
                quoted = conn.dialect.identifier_preparer.quote(self._config.database)
                await conn.execute(text(f"CREATE DATABASE {quoted}"))
                logger.info("database_created", database=self._config.database)
                return True
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Could not ensure database {self._config.database} exists: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        finally:
            await admin_engine.dispose()

    async def initialize(self) -> None:
        """Create the database, extension, schema, tables and indexes if missing."""
        await self.ensure_database_exists()
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.execute(CreateSchema(self._config.schema_name, if_not_exists=True))
                await conn.run_sync(self._tables.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Schema initialization failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        logger.info(
            "fragment_store_initialized",
            schema=self._config.schema_name,
            dimensions=self._config.dimensions,
        )

    async def close(self) -> None:
        await self._engine.dispose()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def replace_document(self, document_id: str) -> AsyncIterator[IFragmentWriter]:
        """Yield a writer whose statements share one transaction.

        The transaction commits when the block exits cleanly and rolls back
        when it raises.  Its first statement takes the document's advisory
        lock, so a concurrent re-index of the same document waits here instead
        of deleting rows it cannot see and leaving both new sets behind.
        """
        try:
            async with self._engine.begin() as conn:
                await conn.execute(self._tables.document_lock(document_id))
                yield _PgFragmentWriter(conn, self._tables, document_id)
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Transaction for document {document_id} failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    async def delete_by_document_id(self, document_id: str) -> int:
        fragment = self._tables.fragment
        try:
            async with self._engine.begin() as conn:
                await conn.execute(self._tables.document_lock(document_id))
                result = await conn.execute(
                    delete(fragment).where(fragment.c.document_id == document_id)
                )
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Failed to delete document {document_id}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        deleted = result.rowcount or 0
        logger.info("document_deleted", document_id=document_id, fragments=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def nearest_neighbors(
        self,
        collection: Collection,
        vector: list[float],
        max_distance: float,
        limit: int | None = None,
    ) -> list[NeighborRow]:
        stmt = self._tables.neighbor_query(collection, vector, max_distance, limit)
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Nearest-neighbor query on {collection.value} failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        return [
            NeighborRow(
                fragment_id=row["fragment_id"],
                document_id=row["document_id"],
                display_text=row["display_text"],
                # Float rounding can yield tiny negatives for identical vectors.
                distance=max(0.0, float(row["distance"])),
                source=collection,
                question=row["question"],
            )
            for row in rows
        ]

    async def list_indexed_document_ids(self, candidate_ids: list[str]) -> list[str]:
        if not candidate_ids:
            return []
        fragment = self._tables.fragment
        stmt = (
            select(fragment.c.document_id)
            .where(fragment.c.document_id.in_(candidate_ids))
            .distinct()
        )
        try:
            async with self._engine.connect() as conn:
                found = set((await conn.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Indexed-document lookup failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        return [doc_id for doc_id in candidate_ids if doc_id in found]

    async def get_stats(self) -> StoreStats:
        fragment = self._tables.fragment
        question = self._tables.question
        try:
            async with self._engine.connect() as conn:
                fragments = await conn.scalar(select(func.count()).select_from(fragment))
                questions = await conn.scalar(select(func.count()).select_from(question))
                documents = await conn.scalar(
                    select(func.count(fragment.c.document_id.distinct()))
                )
                fragments_null = await conn.scalar(
                    select(func.count()).select_from(fragment).where(fragment.c.embedding.is_(None))
                )
                questions_null = await conn.scalar(
                    select(func.count()).select_from(question).where(question.c.embedding.is_(None))
                )
        except SQLAlchemyError as exc:
            raise StorageError(
                message=f"Stats query failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        return StoreStats(
            fragments=fragments or 0,
            questions=questions or 0,
            documents=documents or 0,
            fragments_without_embedding=fragments_null or 0,
            questions_without_embedding=questions_null or 0,
        )

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
