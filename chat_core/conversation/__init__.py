"""当前会话的消息列表、乐观发送与对账。"""

from .engine import ConversationEngine

__all__ = ["ConversationEngine"]
