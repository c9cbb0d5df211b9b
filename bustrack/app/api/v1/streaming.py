"""
WebSocket helpers for push channels.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.core.dependencies import authenticate_token
from bustrack.app.models.enums import UserType
from bustrack.app.services.realtime import LatestValueQueue

logger = logging.getLogger("bustrack.realtime")


async def authenticate_websocket(
    websocket: WebSocket,
    token: str,
    db: AsyncSession,
    required: Optional[UserType] = None,
) -> Optional[Dict[str, Any]]:
    """
    Authenticate a WebSocket from its `token` query parameter.

    Closes the socket with 1008 and returns None when the token is invalid
    or the resolved role is not `required`.
    """
    try:
        current_user = await authenticate_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    if required is not None and current_user["user_type"] != required.value:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    return current_user


async def stream_latest(websocket: WebSocket, queue: LatestValueQueue, encode: Callable[[Any], Any]) -> None:
    """
    Forward queued values to the client until it disconnects.

    Only the newest pending value is sent; intermediate values a slow
    client missed are skipped.
    """
    async def forward():
        while True:
            value = await queue.get()
            await websocket.send_json(encode(value))

    async def wait_for_close():
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    forward_task = asyncio.create_task(forward())
    close_task = asyncio.create_task(wait_for_close())
    done, pending = await asyncio.wait({forward_task, close_task}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    for task in done:
        error = task.exception()
        if error is not None and not isinstance(error, WebSocketDisconnect):
            logger.warning("WebSocket stream ended with error: %s", error)
