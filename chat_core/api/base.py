"""后端访问协议。

SessionManager 与 ConversationEngine 不直接依赖 httpx，而是依赖这里的协议：

- AuthBackend: 用 OAuth 授权码换取访问令牌。
- ChatBackend: 会话与消息的增删查。

ChatApiClient 同时实现两者；测试中可以用简单的桩对象替换。
"""

from typing import List, Optional, Protocol

from chat_core.domain.conversation import Chat, Message, NewChatResult, SendResult


class AuthBackend(Protocol):
    """授权码换令牌。

    base_url 用作 bootstrap 的幂等键：同一后端配置只解析一次。
    """

    base_url: str

    async def exchange_code(self, code: str, state: Optional[str] = None) -> str:
        ...


class ChatBackend(Protocol):
    async def list_chats(self, token: str) -> List[Chat]:
        ...

    async def create_chat(self, token: str, title: Optional[str] = None) -> Chat:
        ...

    async def get_chat(self, token: str, chat_id: str) -> Chat:
        ...

    async def delete_chat(self, token: str, chat_id: str) -> None:
        ...

    async def list_messages(self, token: str, chat_id: str) -> List[Message]:
        ...

    async def send_message(self, token: str, chat_id: str, content: str) -> SendResult:
        ...

    async def create_chat_with_message(self, token: str, content: str) -> NewChatResult:
        ...
