"""认证会话模型。

- AuthState: 认证状态机的当前状态（bootstrapping/authenticated/unauthenticated/error）。
- Session: 访问令牌与状态的组合，保证 authenticated 当且仅当令牌非空。
- CallbackParams: OAuth 回调参数值对象，由调用方显式传入 bootstrap。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol
from urllib.parse import parse_qs, urlsplit


AuthStatus = Literal["bootstrapping", "authenticated", "unauthenticated", "error"]


@dataclass(frozen=True)
class AuthState:
    """认证状态。

    status 为 "error" 时 message 携带可展示的错误信息；
    访问控制上 error 与 unauthenticated 等价（没有令牌）。
    """

    status: AuthStatus
    message: Optional[str] = None

    @classmethod
    def bootstrapping(cls) -> "AuthState":
        return cls("bootstrapping")

    @classmethod
    def authenticated(cls) -> "AuthState":
        return cls("authenticated")

    @classmethod
    def unauthenticated(cls) -> "AuthState":
        return cls("unauthenticated")

    @classmethod
    def failed(cls, message: str) -> "AuthState":
        return cls("error", message)

    @property
    def is_terminal(self) -> bool:
        return self.status != "bootstrapping"


@dataclass
class Session:
    access_token: Optional[str] = None
    state: AuthState = field(default_factory=AuthState.bootstrapping)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def authenticate(self, token: str) -> None:
        if not token:
            raise ValueError("access token must be non-empty")
        self.access_token = token
        self.state = AuthState.authenticated()

    def reset(self, state: Optional[AuthState] = None) -> None:
        self.access_token = None
        self.state = state or AuthState.unauthenticated()


@dataclass(frozen=True)
class CallbackParams:
    """OAuth 回调携带的参数。"""

    code: Optional[str] = None
    state: Optional[str] = None
    # 提供方直接回传的错误（例如用户取消授权时的 error=access_denied）
    error: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return bool(self.code)

    @property
    def is_error(self) -> bool:
        return bool(self.error) and not self.code

    @classmethod
    def from_url(cls, url: str) -> "CallbackParams":
        query = parse_qs(urlsplit(url or "").query)

        def first(name: str) -> Optional[str]:
            return (query.get(name) or [None])[0] or None

        return cls(code=first("code"), state=first("state"), error=first("error"))


class TokenStore(Protocol):
    """访问令牌的持久化存储（单一键 access_token）。"""

    def load(self) -> Optional[str]:
        ...

    def save(self, token: str) -> None:
        ...

    def clear(self) -> None:
        ...
