from chat_core.session.navigator import MemoryNavigator, strip_query_params, with_query_params


def test_strip_keeps_unrelated_params():
    url = "https://app.example.com/chat?tab=1&code=abc&state=xyz&lang=en#top"
    assert strip_query_params(url) == "https://app.example.com/chat?tab=1&lang=en#top"


def test_strip_without_params_is_identity():
    assert strip_query_params("https://app.example.com/") == "https://app.example.com/"


def test_with_query_params_merges():
    url = with_query_params("https://idp.example.com/auth?prompt=consent", {"client_id": "c"})
    assert url == "https://idp.example.com/auth?prompt=consent&client_id=c"


def test_strip_leaves_other_params_byte_identical():
    url = "https://app.example.com/chat?q=a%20b&code=abc&flag&next=%2Fhome&state=xyz"
    assert strip_query_params(url) == "https://app.example.com/chat?q=a%20b&flag&next=%2Fhome"


def test_strip_matches_encoded_names():
    url = "https://app.example.com/?co%64e=abc&tab=1"
    assert strip_query_params(url) == "https://app.example.com/?tab=1"


def test_with_query_params_keeps_existing_encoding():
    url = with_query_params("https://idp.example.com/auth?q=a%20b&flag&prompt=none", {"prompt": "consent"})
    assert url == "https://idp.example.com/auth?q=a%20b&flag&prompt=consent"


def test_memory_navigator_records_assign():
    nav = MemoryNavigator("https://app.example.com/?code=abc")
    nav.replace("https://app.example.com/")
    assert nav.assigned == []
    nav.assign("https://idp.example.com/auth")
    assert nav.assigned == ["https://idp.example.com/auth"]
    assert nav.current_url == "https://idp.example.com/auth"
