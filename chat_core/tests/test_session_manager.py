"""测试认证会话状态机。"""

import asyncio
from urllib.parse import parse_qs, urlsplit

from chat_core.domain.exceptions import ApiError, ProtocolError
from chat_core.domain.session import CallbackParams
from chat_core.infrastructure.storage.token_store import MemoryTokenStore
from chat_core.session.manager import SessionManager
from chat_core.session.navigator import MemoryNavigator


class SettingsStub:
    api_base_url = "https://api.example.com"
    oauth_client_id = "client-123"
    oauth_provider_url = "https://accounts.example.com/o/oauth2/auth"
    oauth_redirect_uri = "https://app.example.com/"


class FakeAuthBackend:
    base_url = "https://api.example.com"

    def __init__(self, token="tok-1", error=None, gate=None):
        self.token = token
        self.error = error
        self.gate = gate
        self.calls = []

    async def exchange_code(self, code, state=None):
        self.calls.append((code, state))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.token


def make_manager(url="https://app.example.com/", token=None, backend=None, cfg=None):
    backend = backend or FakeAuthBackend()
    store = MemoryTokenStore(token)
    navigator = MemoryNavigator(url)
    manager = SessionManager(backend, store, navigator, cfg=cfg or SettingsStub())
    return manager, backend, store, navigator


def test_bootstrap_restores_persisted_token_once():
    manager, backend, store, _ = make_manager(token="saved")
    first = asyncio.run(manager.bootstrap())
    store.save("other")
    second = asyncio.run(manager.bootstrap())
    assert first.status == "authenticated"
    assert second == first
    assert manager.access_token == "saved"
    assert backend.calls == []


def test_bootstrap_without_token_is_unauthenticated():
    manager, _, _, _ = make_manager()
    assert manager.is_loading
    assert asyncio.run(manager.bootstrap()).status == "unauthenticated"
    assert asyncio.run(manager.bootstrap()).status == "unauthenticated"
    assert manager.access_token is None


def test_callback_round_trip():
    manager, backend, store, navigator = make_manager(
        url="https://app.example.com/?code=abc&state=xyz&tab=chats"
    )
    state = asyncio.run(manager.bootstrap())
    assert state.status == "authenticated"
    assert manager.access_token == "tok-1"
    assert store.load() == "tok-1"
    assert backend.calls == [("abc", "xyz")]
    query = parse_qs(urlsplit(navigator.current_url).query)
    assert "code" not in query and "state" not in query
    assert query["tab"] == ["chats"]
    assert navigator.assigned == []


def test_explicit_callback_params():
    manager, backend, _, _ = make_manager()
    asyncio.run(manager.bootstrap(CallbackParams(code="abc")))
    assert backend.calls == [("abc", None)]
    assert manager.is_authenticated


def test_failed_exchange_clears_token():
    backend = FakeAuthBackend(error=ApiError(code="API_ERROR", message="Invalid code", http_status=400))
    manager, _, store, navigator = make_manager(
        url="https://app.example.com/?code=abc&state=xyz&scope=email",
        token="old",
        backend=backend,
    )
    state = asyncio.run(manager.bootstrap())
    assert state.status == "error"
    assert state.message == "Invalid code"
    assert manager.access_token is None
    assert store.load() is None
    assert navigator.current_url == "https://app.example.com/"


def test_missing_token_in_payload_is_error():
    backend = FakeAuthBackend(
        error=ProtocolError(code="TOKEN_MISSING", message="No access token returned from server")
    )
    manager, _, _, _ = make_manager(url="https://app.example.com/?code=abc", backend=backend)
    asyncio.run(manager.bootstrap())
    assert manager.state.status == "error"
    assert not manager.is_authenticated


def test_provider_error_param():
    manager, backend, _, navigator = make_manager(url="https://app.example.com/?error=access_denied")
    state = asyncio.run(manager.bootstrap())
    assert state.status == "error"
    assert "access_denied" in state.message
    assert backend.calls == []
    assert "error" not in navigator.current_url


def test_code_is_exchanged_only_once():
    manager, backend, _, _ = make_manager(url="https://app.example.com/?code=abc")

    async def run():
        await asyncio.gather(manager.bootstrap(), manager.bootstrap())
        await manager.complete_login(CallbackParams(code="abc"))

    asyncio.run(run())
    assert backend.calls == [("abc", None)]
    assert manager.access_token == "tok-1"


def test_result_discarded_after_close():
    async def run():
        gate = asyncio.Event()
        backend = FakeAuthBackend(gate=gate)
        manager, _, store, navigator = make_manager(
            url="https://app.example.com/?code=abc", backend=backend
        )
        task = asyncio.create_task(manager.bootstrap())
        await asyncio.sleep(0)
        manager.close()
        gate.set()
        await task
        return manager, store, navigator

    manager, store, navigator = asyncio.run(run())
    assert manager.access_token is None
    assert manager.state.status == "bootstrapping"
    assert store.load() is None
    assert navigator.current_url == "https://app.example.com/?code=abc"


def test_login_redirects_to_provider():
    manager, _, _, navigator = make_manager()
    assert manager.login() is True
    url = navigator.assigned[0]
    assert url.startswith("https://accounts.example.com/o/oauth2/auth?")
    query = parse_qs(urlsplit(url).query)
    assert query["client_id"] == ["client-123"]
    assert query["redirect_uri"] == ["https://app.example.com/"]


def test_login_without_config_does_not_navigate():
    class Missing(SettingsStub):
        oauth_client_id = None

    manager, _, _, navigator = make_manager(cfg=Missing())
    assert manager.login() is False
    assert navigator.assigned == []
    assert manager.state.status == "error"
    assert "OAUTH_CLIENT_ID" in manager.error


def test_logout_clears_everything_and_notifies():
    manager, _, store, _ = make_manager(token="saved")
    asyncio.run(manager.bootstrap())
    notified = []
    manager.add_logout_listener(lambda: notified.append(True))
    manager.logout()
    assert manager.access_token is None
    assert manager.error is None
    assert manager.state.status == "unauthenticated"
    assert store.load() is None
    assert notified == [True]
