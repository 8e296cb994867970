"""
WebSocket endpoints bridging realtime fan-out to connected clients.
"""
import asyncio
from typing import Annotated, Callable

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from chatsync.api.deps import get_current_identity, get_messaging_service
from chatsync.core.errors import ChatSyncError
from chatsync.core.logging import get_logger
from chatsync.schemas.conversation import ConversationRef
from chatsync.services.messaging import MessagingService
from chatsync.services.pubsub import SubscriptionHandle

logger = get_logger(__name__)

router = APIRouter(prefix="/ws", tags=["Realtime"])


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def _pump(
    websocket: WebSocket,
    service: MessagingService,
    subscribe: Callable[[Callable], SubscriptionHandle],
) -> None:
    """Forward events from a subscription until the client goes away.

    Delivery threads hand events to the event loop and return at once, so a
    slow socket never holds up the fan-out.
    """
    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue()

    handle = subscribe(lambda event: loop.call_soon_threadsafe(events.put_nowait, event))
    disconnected = None
    try:
        await websocket.accept()
        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        while True:
            getter = asyncio.create_task(events.get())
            done, _ = await asyncio.wait({getter, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            await websocket.send_json(getter.result().model_dump(mode="json"))
    except WebSocketDisconnect:
        pass
    finally:
        if disconnected is not None:
            disconnected.cancel()
        # Called inline: an awaited cleanup is cancelled along with the task.
        # Handlers only schedule onto the loop, so the wait is short.
        service.unsubscribe(handle)
        logger.debug("Realtime client disconnected", extra={"extra_data": {"topic": handle.topic}})


@router.websocket("/conversations/{ref}")
async def conversation_stream(
    websocket: WebSocket,
    ref: str,
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> None:
    """Push every new message of one conversation."""
    conversation_ref = ConversationRef.parse(ref)
    try:
        service.read_state.authorize(conversation_ref, identity)
    except ChatSyncError as e:
        logger.warning(f"Realtime subscription refused: {e.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await _pump(
        websocket,
        service,
        lambda handler: service.subscribe_conversation(conversation_ref, handler),
    )


@router.websocket("/conversations")
async def conversation_list_stream(
    websocket: WebSocket,
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> None:
    """Push a refetch signal whenever the caller's conversation list changes."""
    await _pump(
        websocket,
        service,
        lambda handler: service.subscribe_user_list(identity, handler),
    )
