import logging
import secrets
from typing import Optional, Protocol

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

# NFT Drop mint: claimTo(address,uint256)
CLAIM_TO_METHOD = "function claimTo(address _receiver, uint256 _quantity)"


class MinterError(RuntimeError):
    """Mint submission failed. The message is for logs, never for clients."""


class Minter(Protocol):
    async def mint(self, to_address: str) -> str:
        ...


class EngineMinter:
    """
    Queue a one-unit claimTo() on the drop contract through the Engine HTTP API.

    The call returns as soon as Engine has accepted the transaction; the returned
    id is Engine's queue id, not a chain hash. No retries happen here.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def build_payload(self, to_address: str) -> dict:
        return {
            "executionOptions": {
                "from": self.settings.server_wallet_address,
                "chainId": self.settings.chain_id,
            },
            "params": [
                {
                    "contractAddress": self.settings.contract_address,
                    "method": CLAIM_TO_METHOD,
                    "params": [to_address, "1"],
                }
            ],
        }

    async def mint(self, to_address: str) -> str:
        url = f"{self.settings.engine_url}/v1/write/contract"
        headers = {
            "x-secret-key": self.settings.secret_key,
            "x-vault-access-token": self.settings.vault_access_token,
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.mint_timeout_seconds, transport=self.transport
            ) as client:
                r = await client.post(url, headers=headers, json=self.build_payload(to_address))
        except httpx.HTTPError as e:
            raise MinterError(f"Engine request failed: {e!r}") from e

        if r.status_code >= 400:
            raise MinterError(f"Engine write failed: {r.status_code} {r.text}")

        try:
            transactions = r.json()["result"]["transactions"]
            transaction_id = transactions[0]["id"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MinterError(f"Engine response without transaction id: {r.text}") from e

        if not transaction_id:
            raise MinterError(f"Engine returned an empty transaction id: {r.text}")
        return str(transaction_id)


class DevMinter:
    """Pretends to mint. Only for local runs with DEV_FAKE_MINT=1."""

    async def mint(self, to_address: str) -> str:
        transaction_id = f"dev_{secrets.token_hex(16)}"
        logger.warning("[DEV MINT] %s -> %s", to_address, transaction_id)
        return transaction_id


def build_minter(settings: Settings) -> Minter:
    if settings.dev_fake_mint:
        return DevMinter()
    return EngineMinter(settings)
