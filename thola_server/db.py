from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thola_server.load_secrets import db_backend

if db_backend == "sqlite":
    from thola_server.create_sqlite_engine import engine
else:
    from thola_server.create_postgres_engine import engine

# Centralized session factory to avoid creating it in router modules.
Session = async_sessionmaker(
    autocommit=False,
    class_=AsyncSession,
    autoflush=True,
    bind=engine,
)
