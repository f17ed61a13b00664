import json

import httpx
import pytest

from geocache.exceptions import CacheBackendUnavailable
from geocache.models import TtlStatus
from geocache.services.upstash_store import UpstashRestStore

URL = "https://example-db.upstash.io"
TOKEN = "test-token"


class FakeUpstash:
    """Just enough of the Upstash REST command endpoint, over httpx.MockTransport."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.commands: list[list[str]] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == f"Bearer {TOKEN}"
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="upstream unavailable")

        command = json.loads(request.content)
        self.commands.append(command)
        name, args = command[0].upper(), command[1:]

        if name == "PING":
            result = "PONG"
        elif name == "GET":
            result = self.data.get(args[0])
        elif name == "SET":
            self.data[args[0]] = args[1]
            self.ttls.pop(args[0], None)
            if len(args) == 4 and args[2].upper() == "EX":
                self.ttls[args[0]] = int(args[3])
            result = "OK"
        elif name == "DEL":
            result = 1 if self.data.pop(args[0], None) is not None else 0
            self.ttls.pop(args[0], None)
        elif name == "TTL":
            result = -2 if args[0] not in self.data else self.ttls.get(args[0], -1)
        elif name == "PERSIST":
            result = 1 if self.ttls.pop(args[0], None) is not None else 0
        else:
            return httpx.Response(400, json={"error": f"ERR unknown command '{name}'"})
        return httpx.Response(200, json={"result": result})


@pytest.fixture
def fake():
    return FakeUpstash()


@pytest.fixture
async def upstash(fake):
    s = UpstashRestStore(URL, TOKEN, transport=httpx.MockTransport(fake.handler))
    assert await s.init() is True
    yield s
    await s.close()


async def test_set_get_round_trip(upstash, fake):
    assert await upstash.set("reverse:k", {"city": "São Paulo"}) is True
    assert await upstash.get("reverse:k") == {"city": "São Paulo"}
    assert fake.commands[-2][0] == "SET"
    assert len(fake.commands[-2]) == 3


async def test_set_with_ttl_sends_ex(upstash, fake):
    await upstash.set("k", 1, 60)
    assert fake.commands[-1] == ["SET", "k", "1", "EX", "60"]
    assert await upstash.ttl_remaining("k") == 60


async def test_ttl_states(upstash):
    await upstash.set("k", 1)
    assert await upstash.ttl_remaining("k") is TtlStatus.NO_EXPIRATION
    assert await upstash.ttl_remaining("missing") is TtlStatus.ABSENT


async def test_delete_and_persist(upstash):
    await upstash.set("k", 1, 60)
    assert await upstash.remove_expiration("k") is True
    assert await upstash.ttl_remaining("k") is TtlStatus.NO_EXPIRATION
    assert await upstash.delete("k") is True
    assert await upstash.delete("k") is False


async def test_http_error_is_a_miss(upstash, fake):
    await upstash.set("k", 1)
    fake.fail_with = 503
    assert await upstash.get("k") is None
    assert await upstash.set("k", 2) is False


async def test_error_reply_is_a_failure(upstash):
    with pytest.raises(CacheBackendUnavailable, match="rejected"):
        await upstash._command("NOPE")


async def test_missing_credentials_disable_store():
    s = UpstashRestStore("", "")
    assert await s.init() is False
    assert s.is_available() is False


async def test_ping_failure_disables_store(fake):
    fake.fail_with = 500
    s = UpstashRestStore(URL, TOKEN, transport=httpx.MockTransport(fake.handler))
    assert await s.init() is False
    await s.close()


async def test_transport_error_is_unavailable(fake):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    s = UpstashRestStore(URL, TOKEN, transport=httpx.MockTransport(boom))
    assert await s.init() is False
    await s.close()
