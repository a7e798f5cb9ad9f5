# mintqr/config.py
import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_ENGINE_URL = "https://engine.thirdweb.com"
BASE_CHAIN_ID = 8453


def _flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = ""
    secret_key: str = ""
    vault_access_token: str = ""
    server_wallet_address: str = ""
    contract_address: str = ""
    engine_url: str = DEFAULT_ENGINE_URL
    chain_id: int = BASE_CHAIN_ID
    claim_url: str = ""
    admin_token: str = ""
    dev_fake_mint: bool = False
    mint_timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", "").strip(),
            secret_key=os.getenv("THIRDWEB_SECRET_KEY", "").strip(),
            vault_access_token=os.getenv("THIRDWEB_VAULT_ACCESS_TOKEN", "").strip(),
            server_wallet_address=os.getenv("SERVER_WALLET_ADDRESS", "").strip(),
            contract_address=os.getenv("NFT_CONTRACT_ADDRESS", "").strip(),
            engine_url=os.getenv("ENGINE_URL", DEFAULT_ENGINE_URL).strip().rstrip("/"),
            chain_id=int(os.getenv("CHAIN_ID", str(BASE_CHAIN_ID))),
            # path style uses a "{code}" placeholder, otherwise ?id= is appended
            claim_url=os.getenv("CLAIM_URL", "").strip(),
            admin_token=os.getenv("ADMIN_TOKEN", "").strip(),
            dev_fake_mint=_flag("DEV_FAKE_MINT"),
            mint_timeout_seconds=float(os.getenv("MINT_TIMEOUT_SECONDS", "60")),
        )

    @property
    def chain_configured(self) -> bool:
        return bool(
            self.secret_key
            and self.vault_access_token
            and self.server_wallet_address
            and self.contract_address
        )

    @property
    def minter_configured(self) -> bool:
        return self.dev_fake_mint or self.chain_configured

    def readiness(self) -> dict:
        """Which required values are present. Never includes the values themselves."""
        return {
            "envOk": self.minter_configured,
            "hasSecretKey": bool(self.secret_key),
            "hasVaultToken": bool(self.vault_access_token),
            "hasServerWallet": bool(self.server_wallet_address),
            "hasContract": bool(self.contract_address),
            "hasClaimUrl": bool(self.claim_url),
            "devMint": self.dev_fake_mint,
        }
