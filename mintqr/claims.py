"""Claim flow: validate, fast-path check, mint, then the conditional mark.

Minting happens before marking. A failed mint leaves the code usable; two
racing claims on one code can both mint, but only one ``mark_used`` wins and
the loser gets ``Conflict``.

If the mint succeeds and the store then fails, the chain has a transaction
that no row records. That is logged at ERROR with both ids for
reconciliation; nothing here tries to undo the mint.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool

from .minter import Minter, MinterError
from .security import is_valid_address
from .store import RedemptionStore, StoreUnavailable

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ClaimError(str, enum.Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    CONFLICT = "conflict"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    ClaimError.INVALID_INPUT: "Missing code or invalid walletAddress",
    ClaimError.NOT_FOUND: "QR not found",
    ClaimError.ALREADY_USED: "Already claimed",
    ClaimError.CONFLICT: "QR just got used",
}


@dataclass(frozen=True)
class ClaimResult:
    transaction_ref: Optional[str] = None
    error: Optional[ClaimError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ClaimCoordinator:
    def __init__(
        self,
        store: RedemptionStore,
        minter: Minter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.minter = minter
        self.clock = clock

    async def claim(self, code: str, wallet_address: str) -> ClaimResult:
        code = (code or "").strip()
        wallet_address = (wallet_address or "").strip()
        if not code or not is_valid_address(wallet_address):
            return ClaimResult(error=ClaimError.INVALID_INPUT)

        # store calls are blocking I/O, keep them off the event loop
        row = await run_in_threadpool(self.store.get, code)
        if row is None:
            return ClaimResult(error=ClaimError.NOT_FOUND)
        if row.is_used:
            return ClaimResult(error=ClaimError.ALREADY_USED)

        try:
            transaction_ref = await self.minter.mint(wallet_address)
        except MinterError:
            raise
        except Exception as e:
            raise MinterError(f"minter raised {e!r}") from e
        logger.info("minted for code=%s to=%s tx=%s", code, wallet_address, transaction_ref)

        try:
            changed = await run_in_threadpool(
                self.store.mark_used, code, self.clock(), wallet_address, transaction_ref
            )
        except StoreUnavailable:
            logger.error(
                "UNRECORDED MINT code=%s to=%s tx=%s: store write failed after mint",
                code,
                wallet_address,
                transaction_ref,
            )
            raise

        if not changed:
            logger.warning(
                "claim race lost code=%s to=%s tx=%s: minted but code already consumed",
                code,
                wallet_address,
                transaction_ref,
            )
            return ClaimResult(transaction_ref=transaction_ref, error=ClaimError.CONFLICT)

        return ClaimResult(transaction_ref=transaction_ref)
