"""Chat Core 顶层包。

该包提供聊天客户端的核心实现：OAuth 认证会话状态机、
乐观发送与服务端对账的会话引擎、后端 HTTP 客户端、
配置加载、令牌持久化与日志。
"""

from chat_core.api.service import ChatApp, get_default_app

__all__ = ["ChatApp", "get_default_app"]
