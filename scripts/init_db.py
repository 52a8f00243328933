"""Create the pipeline tables on the configured database.

Intended for local/dev environments. Existing tables are left untouched.
"""

import asyncio
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


async def create_tables() -> int:
  """Create every table registered on Base.metadata."""
  # Import after path setup so the script works when run directly.
  import app.schema  # noqa: F401
  from app.core.database import Base, dispose_engine, get_db_engine

  engine = get_db_engine()
  if engine is None:
    print("Error: PATHGEN_PG_DSN is not set.")
    return 1

  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    print(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
    return 0
  finally:
    await dispose_engine()


if __name__ == "__main__":
  sys.exit(asyncio.run(create_tables()))
