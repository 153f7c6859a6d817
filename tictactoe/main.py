from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from starlette.concurrency import run_in_threadpool
from tictactoe.db import init_db, SessionLocal
from tictactoe.game.coordinator import RoomCoordinator
from tictactoe.game.errors import GameError, RoomNotFound, RoomFull, RoomCodeExhausted, PersistenceFailure
from tictactoe.game.sessions import SessionRegistry
from tictactoe.game.store import RoomStore
from tictactoe.game.websockets import ConnectionManager
from tictactoe.routes import general, room, websockets
from tictactoe.tasks.cleanup import cleanup_empty_rooms_task
import asyncio
import logging
import os
from dotenv import load_dotenv


# uvicorn tictactoe.main:app --reload

if not os.getenv("DATABASE_URL"):
    load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ROOM_GRACE_SECONDS = float(os.getenv("ROOM_GRACE_SECONDS", str(5 * 60)))
CLEANUP_INTERVAL_SECONDS = float(os.getenv("CLEANUP_INTERVAL_SECONDS", "60"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    store = RoomStore(SessionLocal)
    # sessions never survive a restart, so nobody is connected yet
    released = await run_in_threadpool(store.release_all_connections)
    if released:
        logger.info(f"[STARTUP] Marked {released} stale players as disconnected")

    sessions = SessionRegistry()
    manager = ConnectionManager(sessions)
    coordinator = RoomCoordinator(store, sessions, manager, grace_seconds=ROOM_GRACE_SECONDS)
    app.state.coordinator = coordinator

    cleanup_task = asyncio.create_task(
        cleanup_empty_rooms_task(coordinator, ROOM_GRACE_SECONDS, CLEANUP_INTERVAL_SECONDS)
    )
    yield
    # 🧹 On shutdown
    coordinator.shutdown()
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass


app = FastAPI(lifespan=lifespan)

frontend_urls = os.getenv("FRONTEND_URLS", "http://localhost:3000")
allowed_origins = [url.strip() for url in frontend_urls.split(",")]

logger.info(f"🌐 CORS allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    RoomNotFound: 404,
    RoomFull: 409,
    RoomCodeExhausted: 503,
    PersistenceFailure: 503,
}


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"error": exc.code, "message": exc.message})


# Routers
app.include_router(general.router)
app.include_router(room.router)
app.include_router(websockets.router)
