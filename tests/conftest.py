from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from chatkin.store.postgrest import PostgrestClient

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def make_store() -> Callable[[Handler], PostgrestClient]:
    def _make(handler: Handler) -> PostgrestClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PostgrestClient("https://db.example.test/rest/v1", "anon-key", http=http)

    return _make
