# faucet.py
"""
Faucet eligibility and dispensing.

check_eligibility() runs the read-only gates in order and stops at the first
failure:
  1. address syntax
  2. node connection (one client per evaluation, always closed)
  3. peer lookup by consensus address
  4. peer identity derivation
  5. prior claim lookup
  6. sync lag against the chain tip

dispense() then checks the faucet balance, reserves the claim in the store
(atomic insert-if-absent), submits the bonded transfer and records its hash.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterator, Optional, Union

from address_utils import is_valid_address
from faucet_errors import (
    AlreadyClaimed,
    AlreadyExists,
    FaucetError,
    InsufficientFaucetBalance,
    InvalidAddress,
    NodeConnectionError,
    NodeUnreachable,
    NotSynced,
    PeerInfoUnavailable,
    PeerNotFound,
    StoreWriteFailed,
    TransferFailed,
)
from faucet_store import ClaimStore
from node_client import NodeClient, decode_peer_id, peer_identity_from_bytes
from wallet_client import FaucetWallet

log = logging.getLogger(__name__)

MSG_INVALID_ADDRESS = (
    "Pactus Universal Robot is unable to handle your request. "
    "If you are requesting testing faucet, supply the valid address."
)
MSG_NODE_UNREACHABLE = "The bot cannot establish connection to the blockchain network. Try again later."
MSG_PEER_UNAVAILABLE = (
    "Your node information could not be obtained. "
    "Make sure your node is fully synced before requesting the faucet."
)
MSG_ALREADY_CLAIMED = "Sorry. You already received faucet using this address: {address}"
MSG_NOT_SYNCED = (
    "Your node is not fully synchronised. It is behind by {lag} blocks. "
    "Make sure that your node is fully synchronised before requesting faucet."
)
MSG_INSUFFICIENT_BALANCE = "Insufficient faucet balance. Try again later."
MSG_TRANSFER_FAILED = "The faucet transaction could not be submitted. Try again later."
MSG_STORE_FAILED = "The faucet could not record your request. Try again later."
MSG_SUCCESS = "Faucet ({amount:.6f} PAC) is staked on node successfully!"


@dataclass(frozen=True)
class Authorized:
    peer_id: str
    public_key: str
    peer_height: int


@dataclass(frozen=True)
class Rejected:
    reason: str
    message: str


EligibilityResult = Union[Authorized, Rejected]


@dataclass(frozen=True)
class FaucetOutcome:
    ok: bool
    message: str
    tx_hash: str = ""
    reason: str = ""


class FaucetEngine:
    def __init__(
        self,
        node_factory: Callable[[], NodeClient],
        store: ClaimStore,
        wallet: FaucetWallet,
        faucet_amount: Decimal,
        max_sync_lag: int = 1080,
    ):
        self.node_factory = node_factory
        self.store = store
        self.wallet = wallet
        self.faucet_amount = Decimal(str(faucet_amount))
        self.max_sync_lag = int(max_sync_lag)

    @contextmanager
    def _node(self) -> Iterator[NodeClient]:
        try:
            client = self.node_factory()
        except NodeConnectionError as e:
            log.warning("[faucet] error establishing connection: %s", e)
            raise NodeUnreachable(MSG_NODE_UNREACHABLE) from e
        try:
            yield client
        finally:
            client.close()

    def _already_claimed(self, peer_id: str, record_address: Optional[str]) -> AlreadyClaimed:
        address = record_address or ""
        return AlreadyClaimed(MSG_ALREADY_CLAIMED.format(address=address), validator_address=address)

    def evaluate(self, address: str) -> Authorized:
        """Run gates 1-6. Raises a FaucetError subclass on the first failure."""
        address = (address or "").strip()
        if not is_valid_address(address):
            log.info("[faucet] invalid address %r", address)
            raise InvalidAddress(MSG_INVALID_ADDRESS)

        with self._node() as client:
            try:
                peer, public_key = client.get_peer_info(address)
            except (PeerNotFound, NodeConnectionError) as e:
                log.info("[faucet] error getting peer info for %s: %s", address, e)
                raise PeerInfoUnavailable(MSG_PEER_UNAVAILABLE) from e
            if not public_key:
                log.info("[faucet] peer for %s has no public key", address)
                raise PeerInfoUnavailable(MSG_PEER_UNAVAILABLE)

            try:
                peer_id = peer_identity_from_bytes(decode_peer_id(peer.peer_id))
            except ValueError as e:
                log.info("[faucet] error getting peer id for %s: %s", address, e)
                raise PeerInfoUnavailable(MSG_PEER_UNAVAILABLE) from e
            if not peer_id:
                raise PeerInfoUnavailable(MSG_PEER_UNAVAILABLE)

            record, exists = self.store.get_data(peer_id)
            if exists:
                raise self._already_claimed(peer_id, record.validator_address if record else None)

            try:
                height = client.get_blockchain_height()
            except NodeConnectionError as e:
                log.warning("[faucet] error getting current block height: %s", e)
                raise NodeUnreachable(MSG_NODE_UNREACHABLE) from e

            lag = height - int(peer.height)
            if lag > self.max_sync_lag:
                log.info("[faucet] peer %s with address %s is not well synced (lag=%d)", peer_id, address, lag)
                raise NotSynced(MSG_NOT_SYNCED.format(lag=lag), lag=lag)

        return Authorized(peer_id=peer_id, public_key=public_key, peer_height=int(peer.height))

    def check_eligibility(self, address: str) -> EligibilityResult:
        try:
            return self.evaluate(address)
        except FaucetError as e:
            return Rejected(reason=e.reason, message=e.message)

    def dispense(self, address: str, username: str, user_id: str) -> FaucetOutcome:
        address = (address or "").strip()
        try:
            auth = self.evaluate(address)
            tx_hash = self._dispense(auth, address, username, user_id)
        except FaucetError as e:
            return FaucetOutcome(ok=False, message=e.message, reason=e.reason)
        return FaucetOutcome(
            ok=True,
            message=MSG_SUCCESS.format(amount=self.faucet_amount),
            tx_hash=tx_hash,
        )

    def _dispense(self, auth: Authorized, address: str, username: str, user_id: str) -> str:
        try:
            balance = self.wallet.get_balance()
        except NodeConnectionError as e:
            log.warning("[faucet] error reading faucet balance: %s", e)
            raise NodeUnreachable(MSG_NODE_UNREACHABLE) from e
        if balance.available < self.faucet_amount:
            log.warning("[faucet] balance %s below faucet amount %s", balance.available, self.faucet_amount)
            raise InsufficientFaucetBalance(MSG_INSUFFICIENT_BALANCE)

        # Reserve before sending so a concurrent request for the same peer loses here.
        try:
            self.store.set_data(auth.peer_id, address, username, user_id, self.faucet_amount)
        except AlreadyExists:
            record, _ = self.store.get_data(auth.peer_id)
            raise self._already_claimed(auth.peer_id, record.validator_address if record else address)
        except sqlite3.Error as e:
            log.error("[faucet] error reserving claim for peer %s: %s", auth.peer_id, e)
            raise StoreWriteFailed(MSG_STORE_FAILED) from e

        try:
            tx_hash = self.wallet.bond_transaction(auth.public_key, address, self.faucet_amount)
        except Exception:
            self._release(auth.peer_id)
            raise
        if not tx_hash:
            self._release(auth.peer_id)
            raise TransferFailed(MSG_TRANSFER_FAILED)

        try:
            self.store.attach_transaction(auth.peer_id, tx_hash)
        except sqlite3.Error as e:
            # Funds are already out; keep the user-facing result a success.
            log.error(
                "[faucet] error saving faucet information peer=%s address=%s tx=%s: %s",
                auth.peer_id, address, tx_hash, e,
            )
        return tx_hash

    def _release(self, peer_id: str) -> None:
        try:
            self.store.discard(peer_id)
        except sqlite3.Error as e:
            log.error("[faucet] failed to release reservation for peer %s: %s", peer_id, e)
