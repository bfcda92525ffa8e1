"""认证会话管理。

SessionManager 负责整个认证生命周期：

1. bootstrap: 启动时解析一次认证状态。
   - 地址中带有授权码：调用 /auth/callback 换取令牌，成功后持久化并从地址中去掉 code/state；
     失败则清除已存令牌、清理 OAuth 参数并进入 error 状态。
   - 没有授权码：从 TokenStore 恢复令牌。
2. login: 构造提供方登录地址并整页跳转；配置缺失时只报错、不跳转。
3. logout: 清除内存与持久化令牌，通知监听者（ConversationEngine 据此作废进行中的状态）。

同一后端配置（backend.base_url）只会 bootstrap 一次，重复调用直接返回当前状态，
避免同一个一次性授权码被提交两次。close() 之后完成的换取结果会被丢弃。
"""

from typing import Callable, List, Optional, Set

from chat_core.api.base import AuthBackend
from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.session import AuthState, CallbackParams, Session, TokenStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.session.navigator import (
    OAUTH_ERROR_PARAMS,
    OAUTH_PARAMS,
    Navigator,
    strip_query_params,
    with_query_params,
)


LOGIN_FAILED = "Login failed"
PROVIDER_DENIED = "Sign-in was cancelled or failed"


class SessionManager:
    def __init__(
        self,
        backend: AuthBackend,
        store: TokenStore,
        navigator: Navigator,
        cfg=settings,
    ):
        self._backend = backend
        self._store = store
        self._navigator = navigator
        self._settings = cfg
        self._session = Session()
        self._resolved_for: Set[str] = set()
        self._exchanged_codes: Set[str] = set()
        self._alive = True
        self._logout_listeners: List[Callable[[], None]] = []

    # ---- 只读状态 ----

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> AuthState:
        return self._session.state

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._session.state.status == "bootstrapping"

    @property
    def error(self) -> Optional[str]:
        return self._session.state.message

    def add_logout_listener(self, listener: Callable[[], None]) -> None:
        self._logout_listeners.append(listener)

    # ---- 生命周期 ----

    async def bootstrap(self, params: Optional[CallbackParams] = None) -> AuthState:
        """解析初始认证状态，同一后端配置只执行一次。"""

        key = self._backend.base_url or ""
        if not self._alive:
            return self.state
        if key in self._resolved_for:
            logger.info("Bootstrap already resolved, skipping", extra={"extra": {"backend": key}})
            return self.state
        # 在发起换取请求前登记，重入的调用不会再次提交授权码
        self._resolved_for.add(key)
        self._session.reset(AuthState.bootstrapping())

        if params is None:
            params = CallbackParams.from_url(self._navigator.current_url)

        if params.is_present:
            await self._complete_callback(params)
        elif params.is_error:
            self._fail_callback(f"{PROVIDER_DENIED}: {params.error}")
        else:
            self._restore()
        return self.state

    async def complete_login(self, params: CallbackParams) -> AuthState:
        """处理 bootstrap 之后收到的回调（例如桌面端本地回调）。"""

        if params.is_error:
            self._fail_callback(f"{PROVIDER_DENIED}: {params.error}")
        elif params.is_present:
            await self._complete_callback(params)
        return self.state

    def close(self) -> None:
        """拥有者销毁：之后完成的请求不再修改任何状态。"""

        self._alive = False

    # ---- 用户操作 ----

    def login(self) -> bool:
        """跳转到 OAuth 提供方登录页；配置缺失时返回 False 且不跳转。"""

        missing = self._missing_config()
        if missing:
            message = f"Login is not configured: set {', '.join(missing)}"
            logger.error(message, extra={"extra": {"missing": missing}})
            if not self._session.is_authenticated:
                self._session.state = AuthState.failed(message)
            return False

        provider = getattr(self._settings, "oauth_provider_url", None)
        url = with_query_params(
            provider,
            {
                "client_id": self._settings.oauth_client_id,
                "redirect_uri": self._settings.oauth_redirect_uri,
            },
        )
        logger.info("Redirecting to OAuth provider", extra={"extra": {"provider": provider}})
        self._navigator.assign(url)
        return True

    def logout(self) -> None:
        self._session.reset(AuthState.unauthenticated())
        self._clear_store()
        logger.info("Logged out")
        for listener in list(self._logout_listeners):
            listener()

    # ---- 辅助方法 ----

    async def _complete_callback(self, params: CallbackParams) -> None:
        code = params.code or ""
        if code in self._exchanged_codes:
            logger.warning("Authorization code already exchanged, ignoring")
            return
        self._exchanged_codes.add(code)

        try:
            token = await self._backend.exchange_code(code, params.state)
        except BusinessError as e:
            if self._discard_after_teardown():
                return
            self._fail_callback(e.message or LOGIN_FAILED, error_code=e.code)
            return
        except Exception as e:
            if self._discard_after_teardown():
                return
            logger.exception("Unexpected error during code exchange")
            self._fail_callback(str(e) or LOGIN_FAILED, error_code="UNEXPECTED")
            return

        if self._discard_after_teardown():
            return
        if not token:
            self._fail_callback("No access token returned from server", error_code="TOKEN_MISSING")
            return

        self._session.authenticate(token)
        try:
            self._store.save(token)
        except BusinessError as e:
            logger.warning(f"Failed to persist access token: {e.message}")
        self._navigator.replace(strip_query_params(self._navigator.current_url, OAUTH_PARAMS))
        logger.info("OAuth callback exchanged for access token")

    def _fail_callback(self, message: str, error_code: str = "LOGIN_FAILED") -> None:
        self._clear_store()
        self._navigator.replace(strip_query_params(self._navigator.current_url, OAUTH_ERROR_PARAMS))
        self._session.reset(AuthState.failed(message))
        logger.error(f"Login error: {message}", extra={"extra": {"code": error_code}})

    def _restore(self) -> None:
        try:
            token = self._store.load()
        except BusinessError as e:
            logger.warning(f"Failed to read stored token: {e.message}")
            token = None
        if token:
            self._session.authenticate(token)
            logger.info("Restored persisted session")
        else:
            self._session.reset(AuthState.unauthenticated())

    def _clear_store(self) -> None:
        try:
            self._store.clear()
        except BusinessError as e:
            logger.warning(f"Failed to clear stored token: {e.message}")

    def _discard_after_teardown(self) -> bool:
        if self._alive:
            return False
        logger.info("Session manager closed, discarding code exchange result")
        return True

    def _missing_config(self) -> List[str]:
        missing = []
        if not getattr(self._settings, "oauth_client_id", None):
            missing.append("OAUTH_CLIENT_ID")
        if not getattr(self._settings, "oauth_redirect_uri", None):
            missing.append("OAUTH_REDIRECT_URI")
        if not getattr(self._settings, "api_base_url", None):
            missing.append("API_BASE_URL")
        if not getattr(self._settings, "oauth_provider_url", None):
            missing.append("OAUTH_PROVIDER_URL")
        return missing
