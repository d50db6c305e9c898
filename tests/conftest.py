import pytest
import responses

from erc_detector.app import create_app
from erc_detector.chain.rpc import clear_cache
from erc_detector.config import Config
from fixtures.node import FakeNode

RPC_URL = "https://rpc.example.org"


@pytest.fixture(autouse=True)
def _clear_rpc_cache():
    """RPC reads are LRU-cached per process; isolate every test."""
    clear_cache()
    yield
    clear_cache()


@pytest.fixture()
def test_config():
    return Config(rpc_url=RPC_URL, max_proxy_nodes=8, probe_workers=4)


@pytest.fixture()
def app(test_config):
    app = create_app(config=test_config)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def node():
    """A fake JSON-RPC node answering on RPC_URL."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        fake = FakeNode(RPC_URL)
        fake.install(mock)
        yield fake
