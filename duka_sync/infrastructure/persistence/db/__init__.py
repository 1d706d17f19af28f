import contextlib
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class Database:
    """
    Async engine и фабрика сессий для локального хранилища очереди.
    """

    def __init__(self, db_url: str) -> None:
        self._engine: AsyncEngine = create_async_engine(db_url)
        self.session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @contextlib.asynccontextmanager
    async def connection(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            yield session

    async def dispose(self) -> None:
        await self._engine.dispose()
