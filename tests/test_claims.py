import asyncio
from datetime import datetime

import pytest

from mintqr.claims import ClaimCoordinator, ClaimError
from mintqr.minter import MinterError
from mintqr.store import StoreUnavailable

from .conftest import OTHER_WALLET, WALLET, StubMinter

T0 = datetime(2024, 5, 1, 12, 0, 0)


class BrokenWriteStore:
    """Reads work, the final write does not."""

    def __init__(self, store):
        self.inner = store

    def get(self, code_id):
        return self.inner.get(code_id)

    def mark_used(self, *args):
        raise StoreUnavailable("connection reset")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, address",
    [
        ("", WALLET),
        ("   ", WALLET),
        ("code1", "not-an-address"),
        ("code1", ""),
        ("code1", "0x123"),
        ("code1", "1x1111111111111111111111111111111111111111"),
        ("code1", "0x111111111111111111111111111111111111111g"),
        ("code1", WALLET + "1"),
    ],
)
async def test_invalid_input_never_touches_store(code, address):
    minter = StubMinter()
    coordinator = ClaimCoordinator(store=None, minter=minter)

    result = await coordinator.claim(code, address)

    assert result.error is ClaimError.INVALID_INPUT
    assert not result.ok
    assert minter.calls == []


@pytest.mark.asyncio
async def test_valid_address_passes_validation(store):
    result = await ClaimCoordinator(store, StubMinter()).claim("code1", "0x" + "aB" * 20)
    # unknown code, so it got as far as the lookup
    assert result.error is ClaimError.NOT_FOUND


@pytest.mark.asyncio
async def test_unknown_code(store):
    minter = StubMinter()
    result = await ClaimCoordinator(store, minter).claim("doesNotExist", WALLET)

    assert result.error is ClaimError.NOT_FOUND
    assert minter.calls == []


@pytest.mark.asyncio
async def test_already_used_skips_mint(store):
    store.create("abc", T0)
    store.mark_used("abc", T0, OTHER_WALLET, "tx_old")
    minter = StubMinter()

    result = await ClaimCoordinator(store, minter).claim("abc", WALLET)

    assert result.error is ClaimError.ALREADY_USED
    assert minter.calls == []


@pytest.mark.asyncio
async def test_successful_claim_records_settlement(store):
    store.create("abc", T0)
    used_at = datetime(2024, 5, 2, 9, 30)
    coordinator = ClaimCoordinator(store, StubMinter(transaction_id="tx_abc"), clock=lambda: used_at)

    result = await coordinator.claim(" abc ", WALLET)

    assert result.ok
    assert result.transaction_ref == "tx_abc"
    row = store.get("abc")
    assert row.used_at == used_at
    assert row.used_by == WALLET
    assert row.transaction_id == "tx_abc"


@pytest.mark.asyncio
async def test_minter_failure_leaves_code_unused(store):
    store.create("abc", T0)
    coordinator = ClaimCoordinator(store, StubMinter(error="rpc down"))

    with pytest.raises(MinterError):
        await coordinator.claim("abc", WALLET)

    assert store.get("abc").used_at is None


@pytest.mark.asyncio
async def test_store_failure_after_mint_is_raised(store):
    store.create("abc", T0)
    minter = StubMinter(transaction_id="tx_lost")
    coordinator = ClaimCoordinator(BrokenWriteStore(store), minter)

    with pytest.raises(StoreUnavailable):
        await coordinator.claim("abc", WALLET)

    assert minter.calls == [WALLET]
    assert store.get("abc").used_at is None


@pytest.mark.asyncio
@pytest.mark.parametrize("n", [2, 5, 20])
async def test_concurrent_claims_single_winner(store, n):
    store.create("abc", T0)
    # the delay lets every claim pass the fast-path check before any mark
    minter = StubMinter(delay=0.01)
    coordinator = ClaimCoordinator(store, minter)
    wallets = ["0x" + f"{i:040x}" for i in range(n)]

    results = await asyncio.gather(*(coordinator.claim("abc", w) for w in wallets))

    winners = [r for r in results if r.ok]
    assert len(winners) == 1
    assert all(r.error is ClaimError.CONFLICT for r in results if not r.ok)
    assert len(minter.calls) == n

    row = store.get("abc")
    assert row.transaction_id == winners[0].transaction_ref
    assert row.used_by == wallets[results.index(winners[0])]


@pytest.mark.asyncio
async def test_second_claim_after_success_is_already_used(store):
    store.create("abc", T0)
    coordinator = ClaimCoordinator(store, StubMinter())

    first = await coordinator.claim("abc", WALLET)
    second = await coordinator.claim("abc", OTHER_WALLET)

    assert first.ok
    assert second.error is ClaimError.ALREADY_USED
    assert store.get("abc").used_by == WALLET


def test_error_kinds_are_stable():
    assert [e.value for e in ClaimError] == ["invalid_input", "not_found", "already_used", "conflict"]
    assert all(e.message for e in ClaimError)


@pytest.mark.asyncio
async def test_unexpected_minter_exception_becomes_minter_error(store):
    store.create("abc", T0)
    coordinator = ClaimCoordinator(store, StubMinter(exc=ConnectionResetError("socket closed")))

    with pytest.raises(MinterError) as info:
        await coordinator.claim("abc", WALLET)

    assert isinstance(info.value.__cause__, ConnectionResetError)
    assert store.get("abc").used_at is None
