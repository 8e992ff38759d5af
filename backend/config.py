# config.py
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).resolve().parent

# Load backend/.env for local runs; in production env vars come from systemd.
load_dotenv(BACKEND_DIR / ".env")

# Blocks a peer may trail the chain tip (3 hours at 10s blocks).
DEFAULT_MAX_SYNC_LAG = 1080


def _env_int(key: str, default: int) -> int:
    raw = (os.getenv(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_decimal(key: str, default: str) -> Decimal:
    raw = (os.getenv(key) or "").strip() or default
    try:
        return Decimal(raw)
    except InvalidOperation:
        return Decimal(default)


@dataclass
class Settings:
    """Runtime configuration for the faucet bot."""
    rpc_url: str = "http://127.0.0.1:8545"
    node_timeout_sec: int = 10

    faucet_amount: Decimal = Decimal("100")
    faucet_fee: Decimal = Decimal("0.01")
    faucet_address: str = ""
    wallet_name: str = "default_wallet"
    wallet_password: str = ""
    max_sync_lag: int = DEFAULT_MAX_SYNC_LAG

    db_path: str = str(BACKEND_DIR / "faucet.db")
    reservation_ttl_sec: int = 600

    discord_application_id: str = ""
    discord_public_key: str = ""
    discord_api_base: str = "https://discord.com/api/v10"

    status_webhook_url: str = ""
    status_interval_sec: int = 3600

    admin_token: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        node_timeout = max(1, _env_int("NODE_TIMEOUT_SEC", cls.node_timeout_sec))
        return cls(
            rpc_url=(os.getenv("PACTUS_RPC_URL") or cls.rpc_url).strip().rstrip("/"),
            node_timeout_sec=node_timeout,
            faucet_amount=_env_decimal("FAUCET_AMOUNT", "100"),
            faucet_fee=_env_decimal("FAUCET_FEE", "0.01"),
            faucet_address=(os.getenv("FAUCET_ADDRESS") or "").strip(),
            wallet_name=(os.getenv("FAUCET_WALLET_NAME") or cls.wallet_name).strip(),
            wallet_password=os.getenv("FAUCET_WALLET_PASSWORD") or "",
            max_sync_lag=_env_int("MAX_SYNC_LAG", DEFAULT_MAX_SYNC_LAG),
            db_path=(os.getenv("FAUCET_DB") or cls.db_path).strip(),
            # a reservation must outlive balance + build + sign + broadcast round trips
            reservation_ttl_sec=max(4 * node_timeout, _env_int("RESERVATION_TTL_SEC", cls.reservation_ttl_sec)),
            discord_application_id=(os.getenv("DISCORD_APPLICATION_ID") or "").strip(),
            discord_public_key=(os.getenv("DISCORD_PUBLIC_KEY") or "").strip(),
            discord_api_base=(os.getenv("DISCORD_API_BASE") or cls.discord_api_base).strip().rstrip("/"),
            status_webhook_url=(os.getenv("STATUS_WEBHOOK_URL") or "").strip(),
            status_interval_sec=max(10, _env_int("STATUS_INTERVAL_SEC", cls.status_interval_sec)),
            admin_token=(os.getenv("ADMIN_TOKEN") or "").strip(),
            log_level=(os.getenv("LOG_LEVEL") or cls.log_level).strip().upper(),
        )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
    )
