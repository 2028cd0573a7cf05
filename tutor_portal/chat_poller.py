"""
Chat poller: keeps the active conversation fresh without a push channel.

While a conversation is selected, its messages and the conversation list (for unread
counts) are refetched in full every ``interval`` seconds. Selecting another conversation
cancels the previous timer before starting the new one, so there is never more than one
poll task alive. A failed poll is logged and retried on the next tick.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional
from tutor_portal.errors import PortalError
from tutor_portal.logger import logger
from tutor_portal.schemas.chat_schema import Conversation, Message
from tutor_portal.schemas.user_schema import UserRef
from tutor_portal.services.chat_service import ChatService

# Called after every refresh so a view (websocket, terminal...) can re-render
Listener = Callable[["ChatPoller"], Awaitable[None]]


class ChatPoller:
    """
    Attributes:
        conversations (list): Latest conversation list, de-duplicated by id
        active (Conversation): The selected conversation
        messages (list): Messages of the selected conversation
        search_results (list): Users matching the latest search query
    """

    def __init__(self, chat_service: ChatService, interval: float = 3.0, debounce: float = 0.3,
                 min_query_length: int = 2, listener: Optional[Listener] = None):
        self.chat_service = chat_service
        self.interval = interval
        self.debounce = debounce
        self.min_query_length = min_query_length
        self.listener = listener

        self.conversations: List[Conversation] = []
        self.active: Optional[Conversation] = None
        self.messages: List[Message] = []
        self.search_results: List[UserRef] = []

        self._poll_task: Optional[asyncio.Task] = None
        self._search_task: Optional[asyncio.Task] = None
        self.timers_cancelled = 0

    @property
    def active_timers(self) -> int:
        return int(self._poll_task is not None and not self._poll_task.done())

    async def _call(self, fn, *args):
        return await asyncio.to_thread(fn, *args)

    async def _notify(self):
        if not self.listener:
            return
        try:
            await self.listener(self)
        except Exception as e:
            # A broken view must not stop the poll timer
            logger.error(f"Chat listener error: {str(e)}")

    ############################
    ######### FETCHING #########
    ############################

    async def refresh_conversations(self):
        try:
            self.conversations = await self._call(self.chat_service.conversations)
        except PortalError as e:
            logger.error(f"Failed to fetch conversations: {str(e)}")

    async def refresh_messages(self):
        if not self.active:
            return
        try:
            self.messages = await self._call(self.chat_service.messages, self.active.id)
        except PortalError as e:
            logger.error(f"Failed to fetch messages: {str(e)}")

    async def start(self):
        """Load the conversation list."""
        await self.refresh_conversations()
        await self._notify()

    ############################
    ######### POLLING ##########
    ############################

    def _stop_polling(self):
        if self._poll_task is not None:
            if not self._poll_task.done():
                self._poll_task.cancel()
                self.timers_cancelled += 1
            self._poll_task = None

    async def _poll(self, conversation_id: str):
        while True:
            await asyncio.sleep(self.interval)
            try:
                messages = await self._call(self.chat_service.messages, conversation_id)
                # The selection may have changed while the request was in flight
                if self.active and self.active.id == conversation_id:
                    self.messages = messages
                # Also refresh conversations for unread counts
                self.conversations = await self._call(self.chat_service.conversations)
                await self._notify()
            except (PortalError, ValueError) as e:
                logger.error(f"Polling error: {str(e)}")

    async def select(self, conversation: Conversation):
        """
        Make ``conversation`` the active one.

        Cancels the previous poll timer, loads the messages, marks the conversation read
        and starts polling it.
        """
        self._stop_polling()
        self.active = conversation
        self.messages = []
        await self.refresh_messages()

        # Mark as read, failures only get logged
        try:
            await self._call(self.chat_service.mark_read, conversation.id)
        except PortalError as e:
            logger.error(f"Failed to mark conversation {conversation.id} as read: {str(e)}")

        self._poll_task = asyncio.create_task(self._poll(conversation.id))
        await self._notify()

    async def select_id(self, conversation_id: str) -> bool:
        """Select a conversation of the current list by id. Returns False if it is unknown."""
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                await self.select(conversation)
                return True
        return False

    async def open_with(self, user: UserRef) -> Optional[Conversation]:
        """Get or create the conversation with ``user`` and select it."""
        try:
            conversation = await self._call(self.chat_service.conversation_with, user.id)
        except PortalError as e:
            logger.error(f"Failed to create conversation: {str(e)}")
            return None
        if conversation is None:
            return None
        if conversation.other_user is None:
            conversation = conversation.model_copy(update={"other_user": user})
        self.search_results = []
        await self.select(conversation)
        await self.refresh_conversations()
        return conversation

    ############################
    ######### SENDING ##########
    ############################

    async def send(self, content: str) -> Optional[Message]:
        """
        Send a message to the active conversation.
        The message returned by the server is appended right away; the next poll reconciles.
        """
        content = (content or "").strip()
        if not content or not self.active:
            return None
        try:
            message = await self._call(self.chat_service.send_message, self.active.id, content)
        except (PortalError, ValueError) as e:
            logger.error(f"Failed to send message: {str(e)}")
            return None
        if message is not None:
            self.messages = [*self.messages, message]
        await self.refresh_conversations()
        await self._notify()
        return message

    ############################
    ######### SEARCHING ########
    ############################

    async def _search_later(self, query: str):
        await asyncio.sleep(self.debounce)
        try:
            self.search_results = await self._call(self.chat_service.search_users, query)
        except PortalError as e:
            logger.error(f"Search error: {str(e)}")
        await self._notify()

    def search(self, query: str) -> Optional[asyncio.Task]:
        """
        Debounced user search. A newer query cancels the pending one.

        Returns:
        - asyncio.Task: The pending search, None for queries that are too short
        """
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
        self._search_task = None

        if len(query or "") < self.min_query_length:
            self.search_results = []
            return None

        self._search_task = asyncio.create_task(self._search_later(query))
        return self._search_task

    async def close(self):
        """Tear down every timer."""
        self._stop_polling()
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
        self._search_task = None
