"""对外应用服务模块。

ChatApp 把 SessionManager 与 ConversationEngine 组装在一起：
两者互不调用，只共享访问令牌；登出时引擎收到 invalidate 信号。
前端（终端、桌面或 Web 外壳）只需要持有一个 ChatApp。
"""

from typing import Callable, List, Optional

from chat_core.api.client import ChatApiClient
from chat_core.config.settings import settings
from chat_core.conversation.engine import ConversationEngine
from chat_core.domain.conversation import Chat, Message
from chat_core.domain.session import AuthState, CallbackParams
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.token_store import JsonTokenStore
from chat_core.session.manager import SessionManager
from chat_core.session.navigator import BrowserNavigator, Navigator


class ChatApp:
    def __init__(
        self,
        session: SessionManager,
        engine: ConversationEngine,
    ):
        self.session = session
        self.engine = engine
        session.add_logout_listener(engine.invalidate)

    @classmethod
    def create(
        cls,
        navigator: Navigator,
        cfg=settings,
        on_chat_created: Optional[Callable[[Chat], None]] = None,
    ) -> "ChatApp":
        client = ChatApiClient(cfg=cfg)
        session = SessionManager(
            backend=client,
            store=JsonTokenStore(root=cfg.storage_root),
            navigator=navigator,
            cfg=cfg,
        )
        engine = ConversationEngine(backend=client, on_chat_created=on_chat_created)
        return cls(session, engine)

    @property
    def token(self) -> Optional[str]:
        return self.session.access_token

    async def start(self, params: Optional[CallbackParams] = None) -> AuthState:
        """bootstrap 会话；已登录时顺带加载会话列表。"""

        state = await self.session.bootstrap(params)
        if self.session.is_authenticated:
            await self.engine.refresh_chats(self.token)
        return state

    async def complete_login(self, params: CallbackParams) -> AuthState:
        state = await self.session.complete_login(params)
        if self.session.is_authenticated:
            await self.engine.refresh_chats(self.token)
        return state

    def login(self) -> bool:
        return self.session.login()

    def logout(self) -> None:
        self.session.logout()

    def close(self) -> None:
        self.session.close()

    async def refresh(self) -> List[Chat]:
        await self.engine.refresh_chats(self.token)
        return self.engine.chats

    async def select(self, chat_id: Optional[str]) -> List[Message]:
        await self.engine.select_chat(self.token, chat_id)
        return self.engine.messages

    def new_chat(self) -> None:
        self.engine.new_chat()

    async def create_chat(self, title: Optional[str] = None) -> Optional[Chat]:
        return await self.engine.create_chat(self.token, title)

    async def delete(self, chat_id: str) -> bool:
        return await self.engine.delete_chat(self.token, chat_id)

    async def send(self, content: Optional[str] = None) -> bool:
        """向当前会话发送；没有激活会话时以这条消息创建新会话。"""

        if not self.session.is_authenticated:
            logger.warning("Send attempted without an access token")
            return False
        return await self.engine.send_message(self.token, self.engine.active_chat_id, content)


_app: Optional[ChatApp] = None


def get_default_app(navigator: Optional[Navigator] = None) -> ChatApp:
    """获取默认 ChatApp 实例（单例）。"""
    global _app
    if _app is None:
        _app = ChatApp.create(navigator or BrowserNavigator())
    return _app
