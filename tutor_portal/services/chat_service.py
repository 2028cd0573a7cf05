"""
Chat service: conversations, messages and user search.
"""
from typing import List, Optional
from tutor_portal.api import ApiClient
from tutor_portal.schemas.chat_schema import Conversation, Message, MessageCreate
from tutor_portal.schemas.user_schema import UserRef


def dedupe_conversations(conversations: List[Conversation]) -> List[Conversation]:
    """Drop repeated conversations, keeping the first occurrence of each id."""
    seen = set()
    unique = []
    for conversation in conversations:
        if conversation.id in seen:
            continue
        seen.add(conversation.id)
        unique.append(conversation)
    return unique


class ChatService:
    def __init__(self, api: ApiClient):
        self.api = api

    def conversations(self, page: int = 1, limit: int = 20) -> List[Conversation]:
        response = self.api.get("/chat/conversations", params={"page": page, "limit": limit})
        items = [Conversation.model_validate(item) for item in response.unwrap("conversations", [])]
        return dedupe_conversations(items)

    def conversation_with(self, user_id: str) -> Optional[Conversation]:
        """Get or create the conversation with another user."""
        response = self.api.get(f"/chat/conversations/user/{user_id}")
        data = response.unwrap("conversation")
        return Conversation.model_validate(data) if data else None

    def messages(self, conversation_id: str, page: int = 1, limit: int = 50) -> List[Message]:
        response = self.api.get(f"/chat/conversations/{conversation_id}/messages", params={"page": page, "limit": limit})
        return [Message.model_validate(item) for item in response.unwrap("messages", [])]

    def send_message(self, conversation_id: str, content: str, type: str = "text") -> Optional[Message]:
        body = MessageCreate(content=content, type=type).model_dump(by_alias=True)
        response = self.api.post(f"/chat/conversations/{conversation_id}/messages", body)
        data = response.unwrap("message")
        return Message.model_validate(data) if data else None

    def mark_read(self, conversation_id: str) -> bool:
        return self.api.put(f"/chat/conversations/{conversation_id}/read").success

    def unread_count(self) -> int:
        return int(self.api.get("/chat/unread").unwrap("unreadCount", 0))

    def search_users(self, query: str, role: Optional[str] = None) -> List[UserRef]:
        response = self.api.get("/chat/users/search", params={"q": query, "role": role})
        return [UserRef.model_validate(item) for item in response.unwrap("users", [])]

    def delete_message(self, message_id: str) -> bool:
        return self.api.delete(f"/chat/messages/{message_id}").success
