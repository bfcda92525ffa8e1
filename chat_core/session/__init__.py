"""认证会话：状态机（manager）与页面地址抽象（navigator）。"""

from .manager import SessionManager
from .navigator import BrowserNavigator, MemoryNavigator, Navigator

__all__ = ["SessionManager", "Navigator", "MemoryNavigator", "BrowserNavigator"]
