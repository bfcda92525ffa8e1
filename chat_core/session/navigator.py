"""页面地址抽象。

SessionManager 只通过 Navigator 读写地址，不依赖具体 UI 运行时：
- replace(url): 替换当前地址但不发生跳转（等价于 history.replaceState）。
- assign(url): 整页跳转（当前页面即将被替换）。
"""

import webbrowser
from typing import List, Protocol, Sequence
from urllib.parse import unquote_plus, urlencode, urlsplit, urlunsplit


OAUTH_PARAMS = ("code", "state")
# 授权失败或提供方附带的参数，一并清理，避免刷新时重放失效的授权码
OAUTH_ERROR_PARAMS = ("code", "state", "scope", "authuser", "prompt", "hd", "error", "error_description")


class Navigator(Protocol):
    @property
    def current_url(self) -> str:
        ...

    def replace(self, url: str) -> None:
        ...

    def assign(self, url: str) -> None:
        ...


def _pairs(query: str) -> List[str]:
    return [p for p in query.split("&") if p]


def _name(pair: str) -> str:
    return unquote_plus(pair.split("=", 1)[0])


def strip_query_params(url: str, names: Sequence[str] = OAUTH_PARAMS) -> str:
    """删除指定查询参数。

    其余参数按原始字节保留（不重新编码），顺序不变。
    """

    parts = urlsplit(url)
    kept = [p for p in _pairs(parts.query) if _name(p) not in names]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(kept), parts.fragment))


def with_query_params(url: str, params: dict) -> str:
    """追加或覆盖参数；已有的其他参数原样保留。"""

    parts = urlsplit(url)
    kept = [p for p in _pairs(parts.query) if _name(p) not in params]
    if params:
        kept.append(urlencode(list(params.items())))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(kept), parts.fragment))


class MemoryNavigator(Navigator):
    """在内存中维护地址，记录整页跳转历史。"""

    def __init__(self, url: str = ""):
        self._url = url
        self.assigned: List[str] = []

    @property
    def current_url(self) -> str:
        return self._url

    def replace(self, url: str) -> None:
        self._url = url

    def assign(self, url: str) -> None:
        self.assigned.append(url)
        self._url = url


class BrowserNavigator(MemoryNavigator):
    """整页跳转时用系统浏览器打开登录地址。"""

    def assign(self, url: str) -> None:
        super().assign(url)
        webbrowser.open(url)
