"""Database initialization helper.

Creates the configured database when missing, creates the tables the job
engine uses and seeds default model pricing. Intended for local/dev
environments. The database name is validated before it is used in SQL,
because CREATE DATABASE cannot be parameterized in PostgreSQL.
"""

import asyncio
import os
import re
import sys

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


_DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# USD per one million tokens.
DEFAULT_PRICING = ({"provider": "openai", "model": "gpt-4o-mini", "input_per_1m": 0.15, "output_per_1m": 0.60}, {"provider": "openai", "model": "gpt-4o", "input_per_1m": 2.50, "output_per_1m": 10.00})


def _validate_database_name(db_name: str) -> str:
  """Validate a PostgreSQL database name used as an identifier."""
  if not db_name:
    raise ValueError("Target database name is empty.")

  # Identifier context: only letters, digits and underscores.
  if not _DB_NAME_PATTERN.fullmatch(db_name):
    raise ValueError("Target database name contains invalid characters (allowed: A-Z, a-z, 0-9, _).")

  return db_name


def _async_url(dsn: str):
  url = make_url(dsn)
  if url.drivername.startswith("postgresql") and "+asyncpg" not in url.drivername:
    url = url.set(drivername="postgresql+asyncpg")
  return url


async def create_database_if_not_exists(dsn: str) -> None:
  """Create the configured database if it does not already exist."""
  url = _async_url(dsn)
  target_db = _validate_database_name(url.database or "")

  print(f"Connecting to postgres to check for database '{target_db}'...")

  # CREATE DATABASE cannot run inside a transaction.
  engine = create_async_engine(url.set(database="postgres"), isolation_level="AUTOCOMMIT")

  try:
    async with engine.connect() as conn:
      result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": target_db})
      if result.scalar() == 1:
        print(f"Database '{target_db}' already exists.")
      else:
        print(f"Database '{target_db}' does not exist. Creating...")
        await conn.execute(text(f'CREATE DATABASE "{target_db}"'))
        print(f"Database '{target_db}' created successfully.")
  finally:
    await engine.dispose()


async def create_schema(dsn: str) -> None:
  """Create missing tables and seed default pricing rows."""
  from litreview.core.database import Base
  from litreview.schema import LlmModelPricing

  engine = create_async_engine(_async_url(dsn))
  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
      statement = insert(LlmModelPricing).values(list(DEFAULT_PRICING)).on_conflict_do_nothing(constraint="ux_llm_model_pricing_provider_model")
      await conn.execute(statement)
    print(f"Schema ready ({len(Base.metadata.tables)} tables).")
  finally:
    await engine.dispose()


async def main() -> None:
  # Import after path setup so the script works when run directly.
  from litreview.config import get_settings

  dsn = get_settings().pg_dsn
  if not dsn:
    print("Error: LITREVIEW_PG_DSN is not set.")
    sys.exit(1)

  try:
    await create_database_if_not_exists(dsn)
    await create_schema(dsn)
  except Exception as e:
    print(f"Error initializing database: {e}")
    sys.exit(1)


if __name__ == "__main__":
  asyncio.run(main())
