# bot_dispatch.py
"""
Maps inbound Discord messages and slash commands to faucet/node calls and
renders exactly one reply per message.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional

from address_utils import coin_from_nano
from config import Settings
from faucet import MSG_NODE_UNREACHABLE, FaucetEngine
from faucet_errors import NodeConnectionError
from faucet_store import ClaimStore
from node_client import NodeClient
from wallet_client import FaucetWallet

log = logging.getLogger(__name__)

RESERVED_COMMANDS = ("help", "network", "address", "balance")

HELP_TEXT = (
    "You can request the faucet by sending your wallet address, "
    "e.g tpc1pxl333elgnrdtk0kjpjdvky44yu62x0cwupnpjl"
)
NETWORK_INTRO = "Pactus is truly decentralised proof of stake blockchain."
GENERIC_FAILURE = "Something went wrong while handling your request. Try again later."

COLOR_SUCCESS = 0x2ECC71
COLOR_FAILURE = 0xE74C3C
COLOR_INFO = 0x3498DB


class ReplyKind(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    INFO = "info"


@dataclass(frozen=True)
class Reply:
    kind: ReplyKind
    title: str
    text: str


@dataclass(frozen=True)
class Author:
    id: str
    username: str = ""


@dataclass
class BotContext:
    """Everything a request handler needs; built once at startup."""
    settings: Settings
    store: ClaimStore
    wallet: FaucetWallet
    engine: FaucetEngine
    node_factory: Callable[[], NodeClient]


def build_context(settings: Settings) -> BotContext:
    node_factory = partial(NodeClient, settings.rpc_url, settings.node_timeout_sec)
    store = ClaimStore(settings.db_path, settings.reservation_ttl_sec)
    wallet = FaucetWallet(
        client_factory=node_factory,
        faucet_address=settings.faucet_address,
        wallet_name=settings.wallet_name,
        wallet_password=settings.wallet_password,
        fee=settings.faucet_fee,
    )
    engine = FaucetEngine(
        node_factory=node_factory,
        store=store,
        wallet=wallet,
        faucet_amount=settings.faucet_amount,
        max_sync_lag=settings.max_sync_lag,
    )
    return BotContext(settings=settings, store=store, wallet=wallet, engine=engine, node_factory=node_factory)


def render_embed(reply: Reply) -> Dict[str, Any]:
    color = {
        ReplyKind.SUCCESS: COLOR_SUCCESS,
        ReplyKind.FAILURE: COLOR_FAILURE,
        ReplyKind.INFO: COLOR_INFO,
    }[reply.kind]
    return {"title": reply.title, "description": reply.text, "color": color}


def format_network_report(node_factory: Callable[[], NodeClient]) -> str:
    """Network statistics; falls back to the intro line when the node is down."""
    msg = NETWORK_INTRO
    try:
        with node_factory() as client:
            nodes = client.get_network_info()
            started = datetime.fromtimestamp(int(nodes.started_at), tz=timezone.utc)
            msg += "\nThe following are the current statistics:\n"
            msg += f"Network started at : {started.strftime('%d/%m/%Y, %H:%M:%S')}\n"
            msg += f"Total bytes sent : {nodes.total_sent_bytes}\n"
            msg += f"Total received bytes : {nodes.total_received_bytes}\n"
            msg += f"Number of peer nodes: {len(nodes.connected_peers)}\n"

            info = client.get_blockchain_info()
            msg += f"Block height: {info.last_block_height}\n"
            msg += f"Total power: {coin_from_nano(info.total_power)} PACs\n"
            msg += f"Total committee power: {coin_from_nano(info.committee_power)} PACs\n"
            msg += f"Total validators: {info.total_validators}\n"
    except (NodeConnectionError, ValueError, OverflowError, OSError) as e:
        # bad node data (e.g. an out of range start time) still yields a partial report
        log.warning("[dispatch] network report incomplete: %s", e)
    return msg


class Dispatcher:
    def __init__(self, ctx: BotContext):
        self.ctx = ctx

    @property
    def bot_user_id(self) -> str:
        return self.ctx.settings.discord_application_id

    def handle_message(self, text: str, author: Author) -> Optional[Reply]:
        """Free-text entry point. Returns None for messages that get no reply."""
        if self.bot_user_id and author.id == self.bot_user_id:
            return None
        content = (text or "").strip()
        if not content:
            return None
        log.debug("[dispatch] message from %s: %s", author.username, content)
        if content in RESERVED_COMMANDS:
            return self.reserved(content)
        return self.faucet(content, author)

    def handle_command(self, name: str, options: Dict[str, Any], author: Author) -> Reply:
        """Slash-command entry point."""
        name = (name or "").strip().lower()
        if name in RESERVED_COMMANDS:
            return self.reserved(name)
        if name == "faucet":
            address = str(options.get("address") or "").strip()
            if not address:
                return Reply(ReplyKind.FAILURE, "Faucet", HELP_TEXT)
            return self.faucet(address, author)
        return Reply(ReplyKind.FAILURE, "Unknown command", HELP_TEXT)

    def reserved(self, name: str) -> Reply:
        if name == "help":
            return Reply(ReplyKind.INFO, "Help", HELP_TEXT)
        if name == "network":
            return Reply(ReplyKind.INFO, "Network", format_network_report(self.ctx.node_factory))
        if name == "address":
            return Reply(ReplyKind.INFO, "Faucet address", f"Faucet address is: {self.ctx.settings.faucet_address}")
        if name == "balance":
            try:
                balance = self.ctx.wallet.get_balance()
            except NodeConnectionError as e:
                log.warning("[dispatch] balance lookup failed: %s", e)
                return Reply(ReplyKind.FAILURE, "Balance", MSG_NODE_UNREACHABLE)
            return Reply(ReplyKind.INFO, "Balance", f"Available faucet balance is {balance.available:.6f} PAC")
        raise ValueError(f"not a reserved command: {name}")

    def faucet(self, address: str, author: Author) -> Reply:
        try:
            outcome = self.ctx.engine.dispense(address, author.username, author.id)
        except Exception:
            log.exception("[dispatch] faucet request for %s failed unexpectedly", address)
            return Reply(ReplyKind.FAILURE, "Faucet", GENERIC_FAILURE)
        if not outcome.ok:
            return Reply(ReplyKind.FAILURE, "Faucet request rejected", outcome.message)
        return Reply(ReplyKind.SUCCESS, "Faucet sent", f"{outcome.message}\nTransaction: {outcome.tx_hash}")
