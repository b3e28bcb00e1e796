from fastapi import FastAPI
import logging

from puzzlehub.api.routes import router
from puzzlehub.runtime.startup import start_session_for_app, stop_session_for_app
from puzzlehub.settings import settings_from_env
from puzzlehub.websocket_hub import hub

app = FastAPI(title="puzzlehub-player", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=settings_from_env().log_level)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    session = start_session_for_app()
    session.subscribe(
        lambda: hub.notify({"type": "player_updated", "player_id": session.player_id, "state": session.state.value})
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    await stop_session_for_app()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "puzzlehub-player", "version": "0.1.0"}
