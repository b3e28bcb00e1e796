from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from puzzlehub.api.deps import get_session
from puzzlehub.api.models import LifecycleRequest, PlayerOverrideRequest, PlayerSnapshot
from puzzlehub.player_session import PlayerSession
from puzzlehub.websocket_hub import hub

router = APIRouter()


@router.websocket("/ws/player")
async def player_updates_ws(websocket: WebSocket) -> None:
    await hub.connect(websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/player", response_model=PlayerSnapshot)
async def get_player_route(session: PlayerSession = Depends(get_session)) -> PlayerSnapshot:
    return session.snapshot()


@router.post("/player/bootstrap", response_model=PlayerSnapshot)
async def bootstrap_route(session: PlayerSession = Depends(get_session)) -> PlayerSnapshot:
    return await session.bootstrap()


@router.post("/player/refetch", response_model=PlayerSnapshot)
async def refetch_route(session: PlayerSession = Depends(get_session)) -> PlayerSnapshot:
    if session.player_id is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No player identity yet")
    await session.refetch()
    return session.snapshot()


@router.put("/player/id", response_model=PlayerSnapshot)
async def override_player_route(
    payload: PlayerOverrideRequest,
    session: PlayerSession = Depends(get_session),
) -> PlayerSnapshot:
    try:
        return await session.override_player_id(payload.player_id, persist=payload.persist)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.post("/player/sign_out", response_model=PlayerSnapshot)
async def sign_out_route(session: PlayerSession = Depends(get_session)) -> PlayerSnapshot:
    try:
        return await session.sign_out()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.post("/player/lifecycle", response_model=PlayerSnapshot)
async def lifecycle_route(
    payload: LifecycleRequest,
    session: PlayerSession = Depends(get_session),
) -> PlayerSnapshot:
    """Foreground/background signal from the client shell.

    Background suspends the periodic profile refresh; active resumes it on the next tick.
    """

    if payload.state == "active":
        session.cache.activate()
    else:
        await session.cache.deactivate()
    return session.snapshot()
