import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from ordertrack.core.errors import OrderTrackError, SessionLoadingError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

STREAMS = ("orders", "assignments", "buy-list")

CLOSE_UNKNOWN_STREAM = 4404
CLOSE_NOT_READY = 4401


@router.websocket("/ws/{stream}")
async def stream_snapshots(websocket: WebSocket, stream: str):
    """Push the resource snapshot on connect and again after every change."""
    await websocket.accept()
    if stream not in STREAMS:
        await websocket.close(code=CLOSE_UNKNOWN_STREAM)
        return
    try:
        app_session = getattr(websocket.app.state, "app_session", None)
        if app_session is None:
            raise SessionLoadingError()
        resource = app_session.resource(stream)
    except OrderTrackError as e:
        await websocket.send_json(e.to_dict())
        await websocket.close(code=CLOSE_NOT_READY)
        return

    changed = asyncio.Event()
    remove_listener = resource.add_listener(changed.set)
    receiver = asyncio.ensure_future(websocket.receive_text())
    try:
        await websocket.send_json(jsonable_encoder(resource.snapshot()))
        while True:
            waiter = asyncio.ensure_future(changed.wait())
            done, _ = await asyncio.wait({waiter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                waiter.cancel()
                receiver.result()
                # clients have nothing to say; keep listening
                receiver = asyncio.ensure_future(websocket.receive_text())
                continue
            changed.clear()
            await websocket.send_json(jsonable_encoder(resource.snapshot()))
    except WebSocketDisconnect:
        logger.debug(f"Live {stream} stream closed by client")
    finally:
        remove_listener()
        receiver.cancel()
