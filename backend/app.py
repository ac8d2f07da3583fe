import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from litestar import Litestar
from litestar.datastructures import State
from litestar.di import Provide

from core.config import AppConfig
from core.db import init_pool, close_pool
from api.health import HealthController, PingController
from api.records import RecordsController
from dataview.service import DataViewEngine
from dataview.store import PostgresStore


config: AppConfig | None = None


def provide_engine(state: State) -> DataViewEngine:
    return state.engine


@asynccontextmanager
async def lifespan(app: Litestar) -> AsyncGenerator[None, None]:
    global config
    config = AppConfig.load()
    logging.basicConfig(level=config.dataview.log_level.upper())
    print(f"Config loaded: database={config.database.host}")

    # An engine handed to create_app() brings its own store
    if app.state.get("engine") is not None:
        yield
        return

    if config.database.host:
        await init_pool(config.database.conninfo)
        print("Database pool initialized")

    app.state.engine = DataViewEngine.create(
        PostgresStore(),
        chunk_size=config.dataview.lookup_chunk_size,
        history_limit=config.dataview.history_limit,
    )

    yield

    await close_pool()
    print("Database pool closed")


def create_app(engine: DataViewEngine | None = None) -> Litestar:
    return Litestar(
        route_handlers=[
            HealthController,
            PingController,
            RecordsController,
        ],
        dependencies={
            "engine": Provide(provide_engine, sync_to_thread=False),
        },
        state=State({"engine": engine}),
        lifespan=[lifespan],
    )


app = create_app()
