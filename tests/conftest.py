import base64
import hashlib
from decimal import Decimal

import pytest

from address_utils import ADDRESS_TYPE_VALIDATOR, TESTNET_HRP, encode_address
from faucet import FaucetEngine
from faucet_errors import NodeConnectionError, PeerNotFound
from faucet_models import BlockchainInfoOut, NetworkInfoOut, PeerInfoOut
from faucet_store import ClaimStore
from wallet_client import Balance


def make_address(seed: str) -> str:
    payload = hashlib.sha256(seed.encode()).digest()[:20]
    return encode_address(TESTNET_HRP, ADDRESS_TYPE_VALIDATOR, payload)


def make_peer_id(seed: str) -> bytes:
    # sha2-256 multihash
    return b"\x12\x20" + hashlib.sha256(seed.encode()).digest()


def make_peer(seed: str, addresses, height: int, keys=None) -> PeerInfoOut:
    return PeerInfoOut(
        peer_id=base64.b64encode(make_peer_id(seed)).decode(),
        moniker=seed,
        height=height,
        consensus_addresses=list(addresses),
        consensus_keys=list(keys if keys is not None else [f"public{a[-6:]}" for a in addresses]),
    )


class FakeNode:
    """Stands in for NodeClient; shared state lives on the factory."""

    def __init__(self, factory):
        self.factory = factory
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.closed = True
        self.factory.closed += 1

    def get_network_info(self):
        self.factory.calls.append("get_network_info")
        if self.factory.network_error:
            raise NodeConnectionError("network down")
        return NetworkInfoOut(
            started_at=self.factory.started_at,
            total_sent_bytes=1234,
            total_received_bytes=5678,
            connected_peers=self.factory.peers,
        )

    def get_peer_info(self, address):
        self.factory.calls.append("get_peer_info")
        for peer in self.get_network_info().connected_peers:
            for i, addr in enumerate(peer.consensus_addresses):
                if addr == address:
                    key = peer.consensus_keys[i] if i < len(peer.consensus_keys) else ""
                    return peer, key
        raise PeerNotFound(address)

    def get_blockchain_info(self):
        self.factory.calls.append("get_blockchain_info")
        if self.factory.height_error:
            raise NodeConnectionError("height unavailable")
        return BlockchainInfoOut(
            last_block_height=self.factory.height,
            total_power=5_000_000_000_000,
            committee_power=1_500_000_000_000,
            total_validators=42,
        )

    def get_blockchain_height(self):
        return self.get_blockchain_info().last_block_height


class FakeNodeFactory:
    def __init__(self):
        self.peers = []
        self.height = 100_000
        self.started_at = 1700000000
        self.network_error = False
        self.height_error = False
        self.connect_error = False
        self.opened = 0
        self.closed = 0
        self.calls = []

    def __call__(self):
        if self.connect_error:
            raise NodeConnectionError("cannot dial")
        self.opened += 1
        return FakeNode(self)


class FakeWallet:
    def __init__(self, available="1000", tx_hash="abc123"):
        self.available = Decimal(available)
        self.tx_hash = tx_hash
        self.balance_error = False
        self.bond_calls = []

    def get_balance(self):
        if self.balance_error:
            raise NodeConnectionError("balance unavailable")
        return Balance(available=self.available)

    def bond_transaction(self, public_key, address, amount):
        self.bond_calls.append((public_key, address, amount))
        return self.tx_hash


@pytest.fixture
def store(tmp_path):
    s = ClaimStore(str(tmp_path / "faucet.db"))
    s.init_db()
    return s


@pytest.fixture
def node():
    return FakeNodeFactory()


@pytest.fixture
def wallet():
    return FakeWallet()


@pytest.fixture
def engine(node, store, wallet):
    return FaucetEngine(
        node_factory=node,
        store=store,
        wallet=wallet,
        faucet_amount=Decimal("100"),
        max_sync_lag=1080,
    )


@pytest.fixture
def ctx(node, store, wallet, engine, tmp_path):
    from bot_dispatch import BotContext
    from config import Settings

    settings = Settings(
        faucet_address="tpc1zfaucetaddress",
        db_path=str(tmp_path / "faucet.db"),
        discord_application_id="42",
    )
    return BotContext(settings=settings, store=store, wallet=wallet, engine=engine, node_factory=node)
