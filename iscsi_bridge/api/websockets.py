from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..dependencies import get_websocket_manager
from ..domains.presentation.websocket_manager import WebSocketManager

router = APIRouter(prefix="/api/ws", tags=["websockets"])


@router.websocket("/events")
async def iscsi_events(
    websocket: WebSocket, manager: WebSocketManager = Depends(get_websocket_manager)
):
    """Streams iSCSI events; a client may send "ping" to check the link."""
    await manager.connect(websocket)
    try:
        async for text in websocket.iter_text():
            if text == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
