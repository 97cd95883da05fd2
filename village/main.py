# village/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from village.database import engine
from village.game.errors import GameError, InvalidInput, NotFound, StoreFailure
from village.game.locks import PlayerLocks
from village.routes.auth import router as auth_router
from village.routes.battles import router as battles_router
from village.routes.donations import router as donations_router
from village.routes.troops import router as troops_router
from village.routes.village import router as village_router

log = logging.getLogger(__name__)


def status_for(exc: GameError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, InvalidInput):
        return 400
    if isinstance(exc, StoreFailure):
        return 503
    # Rule violations and Busy
    return 409


async def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=code, content=exc.to_dict(), headers=headers)


def create_app() -> FastAPI:
    app = FastAPI(title="Village Strategy Server", version="0.1.0")
    app.state.player_locks = PlayerLocks()

    app.add_exception_handler(GameError, game_error_handler)

    app.include_router(auth_router)
    app.include_router(village_router)
    app.include_router(troops_router)
    app.include_router(battles_router)
    app.include_router(donations_router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/db-ping")
    def db_ping() -> dict:
        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1")).scalar_one()
        return {"db": "ok", "select_1": result}

    return app


app = create_app()
