"""
Chat router.

The REST endpoints proxy single chat calls. The websocket drives a ChatPoller for the
visitor: the client sends ``select``/``send``/``search``/``open`` actions and receives a
snapshot after every refresh. Closing the socket tears the poller down.
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from typing import Optional
from tutor_portal.chat_poller import ChatPoller
from tutor_portal.dependencies import Visitor, VisitorRegistry, require_page, visitor_id_from
from tutor_portal.logger import logger
from tutor_portal.schemas.chat_schema import MessageCreate
from tutor_portal.schemas.user_schema import UserRef

router = APIRouter(prefix='/chat')

# Close code sent to anonymous sockets
WS_UNAUTHENTICATED = 4401


def _dump(items) -> list:
    return [item.model_dump(mode="json", by_alias=True) for item in items]


@router.get('/conversations')
def conversations(visitor: Visitor = Depends(require_page())):
    return {"conversations": _dump(visitor.chat.conversations())}


@router.get('/conversations/{conversation_id}/messages')
def messages(conversation_id: str, visitor: Visitor = Depends(require_page())):
    return {"messages": _dump(visitor.chat.messages(conversation_id))}


@router.post('/conversations/{conversation_id}/messages', status_code=201)
def send_message(conversation_id: str, message: MessageCreate, visitor: Visitor = Depends(require_page())):
    sent = visitor.chat.send_message(conversation_id, message.content, message.type)
    return {"message": sent.model_dump(mode="json", by_alias=True) if sent else None}


@router.get('/users/search')
def search_users(q: str = "", role: Optional[str] = None, visitor: Visitor = Depends(require_page())):
    if len(q) < visitor.settings.user_search_min_length:
        return {"users": []}
    return {"users": _dump(visitor.chat.search_users(q, role))}


def snapshot(poller: ChatPoller) -> dict:
    return {
        "conversations": _dump(poller.conversations),
        "active": poller.active.id if poller.active else None,
        "messages": _dump(poller.messages),
        "searchResults": _dump(poller.search_results),
    }


@router.websocket('/ws')
async def chat_socket(websocket: WebSocket):
    registry: VisitorRegistry = websocket.app.state.registry
    visitor = await registry.get(visitor_id_from(websocket.session))
    if not visitor.auth.is_authenticated:
        await websocket.close(code=WS_UNAUTHENTICATED)
        return

    await websocket.accept()

    async def push(poller: ChatPoller):
        await websocket.send_json(snapshot(poller))

    poller = visitor.new_poller(push)
    try:
        await poller.start()
        while True:
            try:
                command = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"error": "Invalid JSON"})
                continue
            if not isinstance(command, dict):
                await websocket.send_json({"error": "Invalid command"})
                continue

            action = command.get("action")
            if action == "select":
                if not await poller.select_id(str(command.get("conversationId"))):
                    await websocket.send_json({"error": "Unknown conversation"})
            elif action == "send":
                await poller.send(str(command.get("content") or ""))
            elif action == "search":
                if poller.search(str(command.get("query") or "")) is None:
                    await push(poller)
            elif action == "open":
                try:
                    user = UserRef.model_validate(command.get("userId"))
                except ValueError:
                    await websocket.send_json({"error": "Missing or invalid userId"})
                    continue
                await poller.open_with(user)
            else:
                await websocket.send_json({"error": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        logger.info(f"Chat socket of visitor {visitor.id} closed")
    finally:
        await visitor.release_poller(poller)
