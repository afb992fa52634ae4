"""WebSocket route for the realtime channel."""

from fastapi import APIRouter, WebSocket

router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """One multiplexed realtime connection per client."""
    await websocket.app.state.services.gateway.serve(websocket)
