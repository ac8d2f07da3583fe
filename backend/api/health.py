from dataclasses import dataclass

from litestar import Controller, get

import core.db as db


@dataclass
class HealthResponse:
    status: str
    config_loaded: bool
    database_host: str | None = None
    database_connected: bool = False


class HealthController(Controller):
    path = "/api/health"
    tags = ["health"]

    @get()
    async def health_check(self) -> HealthResponse:
        from app import config

        return HealthResponse(
            status="ok",
            config_loaded=config is not None,
            database_host=config.database.host if config else None,
            database_connected=await db.ping(),
        )


class PingController(Controller):
    path = "/api/ping"
    tags = ["health"]

    @get()
    async def ping(self) -> dict:
        return {"message": "pong"}
