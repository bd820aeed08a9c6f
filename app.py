"""FastAPI application entrypoint for the crossword royale game server."""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Tuple

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketState

from royale.game import DEFAULT_TICK_INTERVAL, GameRules, HealthDrainRule
from royale.server import PlayerSession, Server
from utils.logging_config import configure_logging, get_logger
from utils.nyt_parser import load_nyt_file
from utils.puzzle_bank import PuzzleBank

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger("app")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class Settings:
    """Container for application environment variables."""

    host: str = "0.0.0.0"
    port: int = 2121
    mark_correct_words_on_fill: bool = True
    health_drain_amount: float = 1
    health_drain_period: float = 3
    game_tick_interval: float = DEFAULT_TICK_INTERVAL
    puzzle_file: Optional[str] = None

    def game_rules(self) -> GameRules:
        return GameRules(
            mark_correct_words_on_fill=self.mark_correct_words_on_fill,
            time_health_drain=HealthDrainRule(
                amount=self.health_drain_amount,
                period=self.health_drain_period,
            ),
        )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("Invalid %s provided, defaulting to %s: %s", name, default, raw)
    return default


def _env_number(name: str, default: float, *, minimum: float, cast: type = float) -> Any:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Invalid %s provided, defaulting to %s: %s", name, default, raw)
        return default
    if value < minimum:
        logger.warning("%s must be at least %s, defaulting to %s", name, minimum, default)
        return default
    return value


def load_settings() -> Settings:
    """Load settings from environment variables, falling back to defaults."""

    defaults = Settings()
    settings = Settings(
        host=os.getenv("HOST", defaults.host),
        port=_env_number("PORT", defaults.port, minimum=1, cast=int),
        mark_correct_words_on_fill=_env_bool("MARK_CORRECT_WORDS_ON_FILL", defaults.mark_correct_words_on_fill),
        health_drain_amount=_env_number("HEALTH_DRAIN_AMOUNT", defaults.health_drain_amount, minimum=0),
        health_drain_period=_env_number("HEALTH_DRAIN_PERIOD", defaults.health_drain_period, minimum=0.001),
        game_tick_interval=_env_number("GAME_TICK_INTERVAL", defaults.game_tick_interval, minimum=0.001),
        puzzle_file=os.getenv("PUZZLE_FILE") or None,
    )
    logger.debug("Loaded settings: %s", settings)
    return settings


# ---------------------------------------------------------------------------
# FastAPI application and game server state
# ---------------------------------------------------------------------------


app = FastAPI()


class AppState:
    """Shared state container for the FastAPI application."""

    def __init__(self) -> None:
        self.settings: Optional[Settings] = None
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.server: Optional[Server] = None


state = AppState()


def build_puzzle_bank(settings: Settings) -> PuzzleBank:
    bank = PuzzleBank()
    if settings.puzzle_file:
        bank.add(load_nyt_file(settings.puzzle_file))
        logger.info("Loaded extra puzzle from %s", settings.puzzle_file)
    return bank


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger.debug("FastAPI startup initiated")

    settings = load_settings()
    state.settings = settings

    scheduler = AsyncIOScheduler()
    scheduler.start()
    state.scheduler = scheduler
    logger.debug("Scheduler started")

    state.server = Server(
        puzzle_bank=build_puzzle_bank(settings),
        rules=settings.game_rules(),
        scheduler=scheduler,
        tick_interval=settings.game_tick_interval,
    )
    logger.info("Game server ready")

    try:
        yield
    finally:
        logger.debug("FastAPI shutdown initiated")
        state.server = None
        if state.scheduler is not None:
            state.scheduler.shutdown(wait=False)
            state.scheduler = None
            logger.debug("Scheduler shut down")


app.router.lifespan_context = app_lifespan


# ---------------------------------------------------------------------------
# Socket plumbing
# ---------------------------------------------------------------------------

Outbound = Tuple[str, Any]


async def _write_outbound(websocket: WebSocket, outbound: "asyncio.Queue[Outbound]") -> None:
    """Drain queued frames to the socket until a close or stop item arrives."""

    while True:
        kind, payload = await outbound.get()
        if kind == "stop":
            return
        if websocket.client_state is WebSocketState.DISCONNECTED:
            continue
        try:
            if kind == "close":
                code, reason = payload
                await websocket.close(code=code, reason=reason)
                return
            await websocket.send_text(payload)
        except WebSocketDisconnect:
            logger.debug("Client went away before a queued %s frame was written", kind)
            return


async def _read_inbound(websocket: WebSocket, server: Server, session: PlayerSession) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        text = message.get("text")
        server.handle_message(session, text if text is not None else message.get("bytes", b""))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/healthz")
async def healthz() -> JSONResponse:
    logger.debug("Health check requested")
    return JSONResponse({"status": "ok"})


@app.websocket("/game")
async def game_socket(websocket: WebSocket) -> None:
    server = state.server
    if server is None:
        logger.error("Game server is not available during websocket connect")
        await websocket.close(code=1011)
        return

    await websocket.accept()
    remote = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "-"

    outbound: asyncio.Queue[Outbound] = asyncio.Queue()
    writer = asyncio.create_task(_write_outbound(websocket, outbound))

    session = server.open_session(
        lambda text: outbound.put_nowait(("text", text)),
        lambda code, reason: outbound.put_nowait(("close", (code, reason))),
        remote=remote,
    )
    try:
        if session is not None:
            await _read_inbound(websocket, server, session)
    except Exception:
        logger.exception("Unexpected error on game socket from %s", remote)
        raise
    finally:
        if session is not None:
            server.close_session(session)
        outbound.put_nowait(("stop", None))
        await writer


def main() -> None:
    settings = load_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
