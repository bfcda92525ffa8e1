"""会话引擎。

维护当前激活会话的消息列表，负责：
- 加载历史消息；
- 乐观发送：先插入占位用户消息，再用服务端结果对账替换；
- 首条消息创建新会话；
- 会话列表缓存的刷新、新建与删除。

可见列表始终满足：已持久化的历史（按后端顺序） + 至多一条占位消息；
对账后占位消息被替换为「用户消息 → 助手回复」，助手回复不会排在用户消息之前。

同一会话同一时刻只允许一个发送在途。切换会话或 invalidate() 之后才返回的请求
不会再修改可见列表。
"""

from datetime import datetime
from typing import Callable, List, Optional, Set, Tuple

from chat_core.api.base import ChatBackend
from chat_core.domain.conversation import (
    Chat,
    Message,
    PendingSend,
    drop_pending,
    reconcile,
    utcnow,
)
from chat_core.domain.exceptions import BusinessError
from chat_core.infrastructure.logging.logger import logger


# 新会话（尚无 id）的发送互斥键
NEW_CHAT_KEY = ""


class ConversationEngine:
    def __init__(
        self,
        backend: ChatBackend,
        on_chat_created: Optional[Callable[[Chat], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._backend = backend
        self._on_chat_created = on_chat_created
        self._clock = clock or utcnow
        self._messages: List[Message] = []
        self._chats: List[Chat] = []
        self._active_chat_id: Optional[str] = None
        self._draft = ""
        self._sending: Set[str] = set()
        self._loading = 0
        self._error: Optional[str] = None
        # generation: invalidate() 时递增；view: 可见列表被整体替换（切换会话）时递增
        self._generation = 0
        self._view = 0
        # 本视图内每次对账递增；记录对账确认的消息，供晚到的历史加载补齐
        self._list_version = 0
        self._confirmed: List[Tuple[int, Message]] = []
        self._last_placeholder_ms = 0

    # ---- 只读状态 ----

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def chats(self) -> List[Chat]:
        return list(self._chats)

    @property
    def active_chat_id(self) -> Optional[str]:
        return self._active_chat_id

    @property
    def draft(self) -> str:
        return self._draft

    @draft.setter
    def draft(self, value: str) -> None:
        self._draft = value or ""

    @property
    def is_sending(self) -> bool:
        return self._key(self._active_chat_id) in self._sending

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def pending(self) -> Optional[PendingSend]:
        for m in self._messages:
            if m.pending is not None:
                return m.pending
        return None

    # ---- 会话选择 ----

    def new_chat(self) -> None:
        """取消选择，下一次发送将创建新会话。"""

        self._switch(None)

    async def select_chat(self, token: Optional[str], chat_id: Optional[str]) -> None:
        if chat_id is None:
            self.new_chat()
            return
        if chat_id == self._active_chat_id:
            return
        self._switch(chat_id)
        await self.load_messages(token, chat_id)

    # ---- 消息 ----

    async def load_messages(self, token: Optional[str], chat_id: Optional[str]) -> None:
        """用后端历史替换可见列表；失败时保留原列表。

        chat_id 不是当前会话时先切换过去：可见列表只属于当前会话。
        """

        if not token or not chat_id:
            return
        if chat_id != self._active_chat_id:
            self._switch(chat_id)
        generation, view, version = self._generation, self._view, self._list_version
        self._loading += 1
        try:
            fetched = await self._backend.list_messages(token, chat_id)
        except BusinessError as e:
            if self._is_current(generation, view):
                self._report("Failed to load messages", e, chat_id=chat_id)
            return
        finally:
            if self._is_current(generation, view):
                self._loading -= 1

        if not self._is_current(generation, view):
            logger.info("Discarding stale message history", extra={"extra": {"chat_id": chat_id}})
            return
        # 请求发出后才对账确认的消息接在历史之后，在途发送的占位消息排在最后
        seen = {(m.id, m.sender) for m in fetched}
        late = [m for v, m in self._confirmed if v > version and (m.id, m.sender) not in seen]
        placeholders = [m for m in self._messages if m.pending is not None]
        self._messages = list(fetched) + late + placeholders

    async def send_message(
        self,
        token: Optional[str],
        chat_id: Optional[str],
        content: Optional[str] = None,
    ) -> bool:
        """乐观发送一条消息。

        chat_id 为 None 时走「首条消息创建会话」路径。content 缺省取 draft。
        返回 False 表示被拒绝或发送失败（失败时占位消息已移除、draft 已恢复）。
        """

        chat_id = chat_id or None
        text = (self._draft if content is None else content).strip()
        key = self._key(chat_id)
        if not text or not token:
            return False
        if chat_id != self._active_chat_id:
            logger.warning(
                "Send rejected: conversation is not active",
                extra={"extra": {"chat_id": chat_id, "active_chat_id": self._active_chat_id}},
            )
            return False
        if key in self._sending:
            logger.info("Send already in flight, ignoring", extra={"extra": {"chat_id": chat_id}})
            return False

        self._sending.add(key)
        generation, view = self._generation, self._view
        self._draft = ""
        self._error = None
        pending = PendingSend(
            chat_id=chat_id or "",
            content=text,
            started_at=self._clock(),
            placeholder_id=self._placeholder_id(),
        )
        self._messages.append(Message.placeholder(pending))

        try:
            if chat_id:
                return await self._send_existing(token, chat_id, pending, generation, view)
            return await self._send_new(token, pending, generation, view)
        finally:
            if generation == self._generation:
                self._sending.discard(key)

    async def _send_existing(
        self,
        token: str,
        chat_id: str,
        pending: PendingSend,
        generation: int,
        view: int,
    ) -> bool:
        try:
            result = await self._backend.send_message(token, chat_id, pending.content)
        except BusinessError as e:
            if self._is_current(generation, view):
                self._messages = drop_pending(self._messages, pending)
                self._draft = pending.content
                self._report("Failed to send message", e, chat_id=chat_id)
            return False

        if not self._is_current(generation, view):
            logger.info("Discarding stale send result", extra={"extra": {"chat_id": chat_id}})
            return True
        assistant = result.assistant_message
        # 后端只返回助手回复时，用户消息沿用助手回复的 id
        user = result.user_message or Message.placeholder(pending).finalized(assistant.id, chat_id)
        self._confirm(pending, [user, assistant])
        return True

    async def _send_new(
        self,
        token: str,
        pending: PendingSend,
        generation: int,
        view: int,
    ) -> bool:
        try:
            result = await self._backend.create_chat_with_message(token, pending.content)
        except BusinessError as e:
            if self._is_current(generation, view):
                self._messages = []
                self._draft = pending.content
                self._report("Failed to create chat", e)
            return False

        if generation != self._generation:
            return True
        chat = result.chat
        self._remember_chat(chat)
        if view != self._view:
            logger.info("Chat created after view changed", extra={"extra": {"chat_id": chat.id}})
            return True

        assistant = result.assistant_message
        user = result.user_message or Message.placeholder(pending).finalized(assistant.id, chat.id)
        self._confirm(pending, [user, assistant])
        # 直接激活，不重新加载（列表已是最新）
        self._active_chat_id = chat.id
        logger.info("Created chat from first message", extra={"extra": {"chat_id": chat.id}})
        if self._on_chat_created is not None:
            self._on_chat_created(chat)
        return True

    # ---- 会话列表 ----

    async def refresh_chats(self, token: Optional[str]) -> None:
        if not token:
            return
        generation = self._generation
        try:
            chats = await self._backend.list_chats(token)
        except BusinessError as e:
            if generation == self._generation:
                self._report("Failed to load chats", e)
            return
        if generation == self._generation:
            self._chats = list(chats)

    async def get_chat(self, token: Optional[str], chat_id: Optional[str]) -> Optional[Chat]:
        if not token or not chat_id:
            return None
        generation = self._generation
        try:
            chat = await self._backend.get_chat(token, chat_id)
        except BusinessError as e:
            if generation == self._generation:
                self._report("Failed to fetch chat", e, chat_id=chat_id)
            return None
        if generation == self._generation:
            self._chats = [chat if c.id == chat.id else c for c in self._chats]
        return chat

    async def create_chat(self, token: Optional[str], title: Optional[str] = None) -> Optional[Chat]:
        """新建空会话，放到列表最前并激活。"""

        if not token:
            return None
        generation = self._generation
        try:
            chat = await self._backend.create_chat(token, title)
        except BusinessError as e:
            if generation == self._generation:
                self._report("Failed to create chat", e)
            return None
        if generation != self._generation:
            return chat
        self._remember_chat(chat)
        await self.select_chat(token, chat.id)
        return chat

    async def delete_chat(self, token: Optional[str], chat_id: Optional[str]) -> bool:
        if not token or not chat_id:
            return False
        generation = self._generation
        try:
            await self._backend.delete_chat(token, chat_id)
        except BusinessError as e:
            if generation == self._generation:
                self._report("Failed to delete chat", e, chat_id=chat_id)
            return False
        if generation != self._generation:
            return True
        self._chats = [c for c in self._chats if c.id != chat_id]
        if self._active_chat_id == chat_id:
            self._switch(None)
        logger.info("Deleted chat", extra={"extra": {"chat_id": chat_id}})
        return True

    # ---- 登出 ----

    def invalidate(self) -> None:
        """登出信号：丢弃全部状态，在途请求的结果不再生效。"""

        self._generation += 1
        self._view += 1
        self._messages = []
        self._chats = []
        self._active_chat_id = None
        self._draft = ""
        self._sending.clear()
        self._loading = 0
        self._error = None
        self._confirmed = []

    # ---- 辅助方法 ----

    def _switch(self, chat_id: Optional[str]) -> None:
        self._view += 1
        self._active_chat_id = chat_id
        self._messages = []
        self._confirmed = []
        self._loading = 0
        self._error = None

    def _confirm(self, pending: PendingSend, confirmed: List[Message]) -> None:
        self._messages = reconcile(self._messages, pending, confirmed)
        self._list_version += 1
        self._confirmed.extend((self._list_version, m) for m in confirmed)

    def _remember_chat(self, chat: Chat) -> None:
        self._chats = [chat] + [c for c in self._chats if c.id != chat.id]

    def _is_current(self, generation: int, view: int) -> bool:
        return generation == self._generation and view == self._view

    def _placeholder_id(self) -> str:
        ms = int(self._clock().timestamp() * 1000)
        if ms <= self._last_placeholder_ms:
            ms = self._last_placeholder_ms + 1
        self._last_placeholder_ms = ms
        return f"temp-{ms}"

    def _report(self, prefix: str, error: BusinessError, **extra) -> None:
        self._error = error.message or prefix
        logger.error(
            f"{prefix}: {error.message}",
            extra={"extra": {**error.to_log(), **extra}},
        )

    @staticmethod
    def _key(chat_id: Optional[str]) -> str:
        return chat_id or NEW_CHAT_KEY
