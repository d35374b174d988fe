# src/tradearena/api/ws.py

"""WebSocket channel delivering match and rating notifications."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tradearena.services.notifier import connection_manager

router = APIRouter(tags=["Notifications"])


@router.websocket("/ws/{user_id}")
async def notifications(websocket: WebSocket, user_id: str) -> None:
    """
    Keep a socket open for server pushes. Incoming text is only used as a
    keep-alive: "ping" gets a "pong" back.
    """
    await connection_manager.connect(user_id, websocket)
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await connection_manager.disconnect(user_id, websocket)
