import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional


Sender = Literal["user", "assistant"]

UNTITLED_CHAT = "Untitled Chat"

# 秒的小数部分：fromisoformat 在 3.11 之前只接受 3 位或 6 位
_FRACTION = re.compile(r"\.(\d+)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if not raw:
        return utcnow()
    text = str(raw).replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Chat:
    id: str
    user_id: str
    title: Optional[str]
    created_at: datetime

    @property
    def display_title(self) -> str:
        return self.title or UNTITLED_CHAT

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Chat":
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("user_id") or ""),
            title=data.get("title") or None,
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True, eq=False)
class PendingSend:
    """一次尚未确认的发送。

    按对象身份比较：对账时只认这个令牌，不依赖占位消息 id 的字符串前缀。
    """

    chat_id: str
    content: str
    started_at: datetime
    placeholder_id: str


@dataclass
class Message:
    id: str
    chat_id: str
    sender: Sender
    content: str
    created_at: datetime
    pending: Optional[PendingSend] = field(default=None, compare=False)

    @property
    def is_placeholder(self) -> bool:
        return self.pending is not None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Message":
        sender = data.get("sender")
        if sender not in ("user", "assistant"):
            raise ValueError(f"unknown sender: {sender!r}")
        return cls(
            id=str(data["id"]),
            chat_id=str(data.get("chat_id") or ""),
            sender=sender,
            content=data.get("content") or "",
            created_at=parse_timestamp(data.get("created_at")),
        )

    @classmethod
    def placeholder(cls, pending: PendingSend) -> "Message":
        return cls(
            id=pending.placeholder_id,
            chat_id=pending.chat_id,
            sender="user",
            content=pending.content,
            created_at=pending.started_at,
            pending=pending,
        )

    def finalized(self, message_id: str, chat_id: Optional[str] = None) -> "Message":
        """由占位消息生成确认后的用户消息。"""

        return replace(
            self,
            id=message_id,
            chat_id=chat_id if chat_id is not None else self.chat_id,
            pending=None,
        )


@dataclass
class SendResult:
    """向已有会话发送消息的结果。

    后端约定只返回助手回复；若后端同时返回了用户消息则 user_message 非空。
    """

    assistant_message: Message
    user_message: Optional[Message] = None


@dataclass
class NewChatResult:
    chat: Chat
    assistant_message: Message
    user_message: Optional[Message] = None


def reconcile(
    messages: List[Message],
    pending: PendingSend,
    confirmed: List[Message],
) -> List[Message]:
    """移除 pending 对应的占位消息，并在末尾追加确认后的消息。"""

    kept = [m for m in messages if m.pending is not pending]
    return kept + list(confirmed)


def drop_pending(messages: List[Message], pending: PendingSend) -> List[Message]:
    return [m for m in messages if m.pending is not pending]
