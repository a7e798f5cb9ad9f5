import asyncio

import pytest
from fastapi.testclient import TestClient

from mintqr.config import Settings
from mintqr.db import init_db, make_engine
from mintqr.main import create_app
from mintqr.minter import MinterError
from mintqr.store import RedemptionStore

WALLET = "0x1111111111111111111111111111111111111111"
OTHER_WALLET = "0x2222222222222222222222222222222222222222"


class StubMinter:
    """Records every mint and hands out a fixed or numbered transaction id."""

    def __init__(self, transaction_id=None, error=None, delay=0.0, exc=None):
        self.transaction_id = transaction_id
        self.error = error
        self.exc = exc
        self.delay = delay
        self.calls = []

    async def mint(self, to_address: str) -> str:
        self.calls.append(to_address)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        if self.error:
            raise MinterError(self.error)
        return self.transaction_id or f"tx_{len(self.calls)}"


def chain_settings(**overrides) -> Settings:
    values = dict(
        secret_key="sk_live_not_for_clients",
        vault_access_token="vt_not_for_clients",
        server_wallet_address="0x9999999999999999999999999999999999999999",
        contract_address="0x8888888888888888888888888888888888888888",
        claim_url="https://claims.example.com/claim",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def engine(tmp_path):
    # file backed: store calls run on worker threads and need their own connections
    engine = make_engine(f"sqlite:///{tmp_path / 'test.sqlite'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return RedemptionStore(engine)


@pytest.fixture
def minter():
    return StubMinter(transaction_id="tx_abc")


@pytest.fixture
def settings():
    return chain_settings()


@pytest.fixture
def client(engine, minter, settings):
    app = create_app(settings=settings, engine=engine, minter=minter)
    with TestClient(app) as c:
        yield c
