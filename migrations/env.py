import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from dotenv import load_dotenv

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# importing the model modules registers their tables and ENUM types on Base
from cedo.db import Base  # noqa: E402
import cedo.models  # noqa: F401,E402

target_metadata = Base.metadata


def database_url() -> str:
    """DDL runs as the owner role when one is configured, else the runtime role"""
    for name in ("DATABASE_URL_OWNER", "DATABASE_URL"):
        url = (os.getenv(name) or "").strip()
        if url:
            return url
    raise RuntimeError("Set DATABASE_URL_OWNER or DATABASE_URL before running migrations")


def _options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # SQLite cannot ALTER most constraints in place
        "render_as_batch": url.startswith("sqlite"),
    }


def run_offline(url: str) -> None:
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline(database_url())
else:
    run_online(database_url())
