# migrations/env.py
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

from src.backend.db import connection_settings
from src.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """
    Database URL from the same environment the app uses
    (MYSQL_URL, then MYSQL*, then DB_*); alembic.ini is the local fallback.
    """
    try:
        params = connection_settings()
    except ValueError:
        return config.get_main_option("sqlalchemy.url") or ""
    from urllib.parse import quote_plus
    return (
        f"mysql+pymysql://{quote_plus(params['user'])}:{quote_plus(params['password'])}"
        f"@{params['host']}:{params['port']}/{params['database']}?charset=utf8mb4"
    )


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    url = get_url()
    if not url:
        raise ValueError("Database URL not configured. Set MYSQL_URL or DB_* environment variables.")
    configuration["sqlalchemy.url"] = url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
