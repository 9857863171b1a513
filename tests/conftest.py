import pytest
import pytest_asyncio
from click.testing import CliRunner

from nutwatch.history.store import HistoryStore
from nutwatch.nut.models import NUTTarget

from tests.fake_nut_server import FakeNUTServer


@pytest_asyncio.fixture
async def nut_server():
    server = FakeNUTServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def target(nut_server):
    return NUTTarget(host="127.0.0.1", port=nut_server.port)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history_store(tmp_path, clock):
    store = HistoryStore(str(tmp_path / "history.db"), clock=clock)
    yield store
    store.close()


@pytest.fixture
def cli_runner():
    return CliRunner()
