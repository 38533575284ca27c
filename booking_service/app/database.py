from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from . import config

# Асинхронный движок; URL и echo берутся из окружения
engine = create_async_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

# Асинхронная фабрика сессий
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


# Асинхронная зависимость для получения сессии
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables(bind=None):
    """Creates every table declared in models on the given engine."""
    from .models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
