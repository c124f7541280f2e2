"""Fragment store adapters.

    - PgVectorFragmentStore -- PostgreSQL + pgvector through SQLAlchemy's
      async engine (asyncpg driver).
"""

from src.providers.fragment_store.pgvector_store import PgVectorFragmentStore

__all__ = ["PgVectorFragmentStore"]
