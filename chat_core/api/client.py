"""聊天后端 HTTP 客户端。

REST 约定（JSON，除授权回调外均使用 Authorization: Bearer <token>）：
- POST /auth/callback            {code, state}  -> {access_token}
- GET/POST /chats                               -> Chat 列表 / 新建 Chat
- GET/DELETE /chats/{id}
- GET/POST /chats/{id}/messages  {content}      -> 消息列表 / 助手回复
- POST {new_chat_path}           {content}      -> {chat, message}

非 2xx 响应体中的 message（或 detail）字段作为错误信息，缺失时使用各操作的默认描述。
"""

from typing import Any, Dict, List, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.conversation import Chat, Message, NewChatResult, SendResult
from chat_core.domain.exceptions import (
    ApiError,
    AuthError,
    NetworkError,
    ProtocolError,
    RateLimitError,
    ValidationError,
)


class ChatApiClient:
    """基于 httpx.AsyncClient 的后端客户端，实现 AuthBackend 与 ChatBackend。"""

    name = "chat-backend"

    def __init__(self, base_url: Optional[str] = None, cfg=settings):
        self._settings = cfg
        self._base_url = (base_url or getattr(cfg, "api_base_url", None) or "").rstrip("/")
        self._new_chat_path = getattr(cfg, "new_chat_path", None) or "/chats/new"
        # 授权回调需要携带 cookie（后端可能用它校验 state）
        self._cookies = httpx.Cookies()

    @property
    def base_url(self) -> str:
        return self._base_url

    # ---- 认证 ----

    async def exchange_code(self, code: str, state: Optional[str] = None) -> str:
        body: Dict[str, Any] = {"code": code}
        if state:
            body["state"] = state
        data = await self._request(
            "POST",
            "/auth/callback",
            json_body=body,
            failure="Login failed",
            with_cookies=True,
        )
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise ProtocolError(code="TOKEN_MISSING", message="No access token returned from server")
        return token

    # ---- 会话 ----

    async def list_chats(self, token: str) -> List[Chat]:
        data = await self._request("GET", "/chats", token=token, failure="Failed to fetch chats")
        return self._parse_list(data, Chat.from_payload)

    async def create_chat(self, token: str, title: Optional[str] = None) -> Chat:
        data = await self._request(
            "POST",
            "/chats",
            token=token,
            json_body={"title": title},
            failure="Failed to create chat",
        )
        return self._parse_one(data, Chat.from_payload)

    async def get_chat(self, token: str, chat_id: str) -> Chat:
        data = await self._request("GET", f"/chats/{chat_id}", token=token, failure="Failed to fetch chat")
        return self._parse_one(data, Chat.from_payload)

    async def delete_chat(self, token: str, chat_id: str) -> None:
        await self._request(
            "DELETE",
            f"/chats/{chat_id}",
            token=token,
            failure="Failed to delete chat",
            expect_body=False,
        )

    # ---- 消息 ----

    async def list_messages(self, token: str, chat_id: str) -> List[Message]:
        data = await self._request(
            "GET",
            f"/chats/{chat_id}/messages",
            token=token,
            failure="Failed to fetch messages",
        )
        return self._parse_list(data, Message.from_payload)

    async def send_message(self, token: str, chat_id: str, content: str) -> SendResult:
        data = await self._request(
            "POST",
            f"/chats/{chat_id}/messages",
            token=token,
            json_body={"content": content},
            failure="Failed to send message",
        )
        if isinstance(data, dict) and "assistant_message" in data:
            return SendResult(
                assistant_message=self._parse_one(data["assistant_message"], Message.from_payload),
                user_message=self._parse_optional(data.get("user_message")),
            )
        return SendResult(assistant_message=self._parse_one(data, Message.from_payload))

    async def create_chat_with_message(self, token: str, content: str) -> NewChatResult:
        data = await self._request(
            "POST",
            self._new_chat_path,
            token=token,
            json_body={"content": content},
            failure="Failed to create chat",
        )
        if not isinstance(data, dict) or "chat" not in data:
            raise ProtocolError(code="CHAT_MISSING", message="No chat returned from server")
        chat = self._parse_one(data["chat"], Chat.from_payload)

        messages = data.get("messages")
        if isinstance(messages, list):
            parsed = self._parse_list(messages, Message.from_payload)
            users = [m for m in parsed if m.sender == "user"]
            assistants = [m for m in parsed if m.sender == "assistant"]
            if not assistants:
                raise ProtocolError(code="MESSAGE_MISSING", message="No assistant reply returned from server")
            return NewChatResult(
                chat=chat,
                assistant_message=assistants[-1],
                user_message=users[0] if users else None,
            )

        reply = data.get("assistant_message") or data.get("message")
        if reply is None:
            raise ProtocolError(code="MESSAGE_MISSING", message="No assistant reply returned from server")
        return NewChatResult(
            chat=chat,
            assistant_message=self._parse_one(reply, Message.from_payload),
            user_message=self._parse_optional(data.get("user_message")),
        )

    # ---- 辅助方法 ----

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        json_body: Optional[Dict[str, Any]] = None,
        failure: str = "Request failed",
        with_cookies: bool = False,
        expect_body: bool = True,
    ) -> Any:
        if not self._base_url:
            raise ValidationError(code="MISSING_API_BASE_URL", message="API_BASE_URL not set")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.http_timeout,
                trust_env=False,
                cookies=self._cookies if with_cookies else None,
            ) as client:
                resp = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    json=json_body,
                    headers=headers,
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or failure, path=path)

        if with_cookies and resp.cookies:
            self._cookies.update(resp.cookies)

        if resp.status_code >= 400:
            message = self._error_message(resp) or failure
            if resp.status_code == 401:
                raise AuthError(code="UNAUTHORIZED", message=message, http_status=401, path=path)
            if resp.status_code == 429:
                raise RateLimitError(code="RATE_LIMIT", message=message, http_status=429, path=path)
            raise ApiError(code="API_ERROR", message=message, http_status=resp.status_code, path=path)

        if not expect_body:
            return None
        try:
            return resp.json()
        except ValueError:
            raise ProtocolError(code="INVALID_JSON", message=f"{failure}: invalid response body", path=path)

    @staticmethod
    def _error_message(resp) -> Optional[str]:
        try:
            data = resp.json()
        except ValueError:
            return None
        if isinstance(data, dict):
            for key in ("message", "detail"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
        return None

    @staticmethod
    def _parse_one(data: Any, parse):
        if not isinstance(data, dict):
            raise ProtocolError(code="INVALID_PAYLOAD", message="Unexpected response shape")
        try:
            return parse(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(code="INVALID_PAYLOAD", message=f"Malformed response: {e}")

    def _parse_list(self, data: Any, parse) -> list:
        if not isinstance(data, list):
            raise ProtocolError(code="INVALID_PAYLOAD", message="Expected a list in response")
        return [self._parse_one(item, parse) for item in data]

    def _parse_optional(self, data: Any) -> Optional[Message]:
        if data is None:
            return None
        return self._parse_one(data, Message.from_payload)
