import tempfile
from pathlib import Path

from chat_core.infrastructure.storage.token_store import JsonTokenStore


def test_token_store_save_load_clear():
    with tempfile.TemporaryDirectory() as d:
        store = JsonTokenStore(root=Path(d) / ".storage")
        assert store.load() is None
        store.save("tok-1")
        assert store.load() == "tok-1"
        # 新实例能读到同一令牌
        assert JsonTokenStore(root=Path(d) / ".storage").load() == "tok-1"
        store.clear()
        assert store.load() is None
        store.clear()


def test_token_store_ignores_corrupt_file():
    with tempfile.TemporaryDirectory() as d:
        store = JsonTokenStore(root=Path(d))
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None
        store.path.write_text('{"access_token": ""}', encoding="utf-8")
        assert store.load() is None
