"""聊天客户端的错误类型。

HTTP 客户端与令牌存储只抛出 BusinessError 的子类；SessionManager 把它们转换为
error 状态，ConversationEngine 把它们写入 engine.error，二者都不会向调用方继续抛出。
"""

from typing import Any, Dict


class BusinessError(Exception):
    """可展示给用户的失败。

    code 供日志与测试判断（如 "NETWORK_ERROR"、"STORE_WRITE_ERROR"），
    message 直接作为界面上的错误文案，http_status 为后端响应码（无响应时取默认值）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra: Any):
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra: Dict[str, Any] = extra

    def to_log(self) -> Dict[str, Any]:
        """日志附加字段；不包含 message 以外的用户内容。"""

        return {"code": self.code, "http_status": self.http_status, **self.extra}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, http_status={self.http_status})"


class NetworkError(BusinessError):
    """请求未得到响应：连接失败或超时。"""


class ApiError(BusinessError):
    """后端返回 4xx / 5xx。"""


class AuthError(ApiError):
    """401：访问令牌失效，或回调授权码已被使用。"""


class RateLimitError(ApiError):
    """429。"""


class ProtocolError(BusinessError):
    """响应成功但内容不符合约定，如回调响应缺少 access_token、消息缺少 id。"""


class ValidationError(BusinessError):
    """调用参数不合法。"""
