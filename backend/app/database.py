from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings

def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite gets WAL mode and a busy timeout."""
    is_sqlite = url.startswith("sqlite")
    eng = create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        **({} if is_sqlite else {"pool_size": 5, "max_overflow": 10}),
    )

    # Concurrent overlap lookups open several connections at once
    if is_sqlite:
        @event.listens_for(eng.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return eng

def make_session_factory(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)

engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)
async_session = make_session_factory(engine)


async def check_db_connection(eng: AsyncEngine | None = None) -> bool:
    """Test database connectivity. Returns True if OK."""
    async with (eng or engine).connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True
