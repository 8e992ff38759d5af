# wallet_client.py
"""
Faucet wallet facade.

Balance comes from the faucet account on chain; bond transfers are built by
the node, signed by the node's wallet service with the configured wallet and
then broadcast. Signing internals stay on the node side.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from address_utils import coin_from_nano, nano_from_coin
from faucet_errors import NodeConnectionError
from node_client import NodeClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Balance:
    available: Decimal


class FaucetWallet:
    def __init__(
        self,
        client_factory: Callable[[], NodeClient],
        faucet_address: str,
        wallet_name: str,
        wallet_password: str = "",
        fee: Decimal = Decimal("0.01"),
        memo: str = "faucet",
    ):
        self.client_factory = client_factory
        self.faucet_address = faucet_address
        self.wallet_name = wallet_name
        self.wallet_password = wallet_password
        self.fee = fee
        self.memo = memo

    def get_balance(self) -> Balance:
        """Available faucet balance in PAC. Raises NodeConnectionError."""
        with self.client_factory() as client:
            nano = client.get_account_balance(self.faucet_address)
        return Balance(available=coin_from_nano(nano))

    def bond_transaction(self, public_key: str, address: str, amount: Decimal) -> str:
        """Bond `amount` PAC to validator `address`. Returns the tx hash, or "" on failure."""
        try:
            with self.client_factory() as client:
                raw = client.call(
                    "pactus.transaction.get_raw_bond_transaction",
                    {
                        "sender": self.faucet_address,
                        "receiver": address,
                        "stake": nano_from_coin(amount),
                        "public_key": public_key,
                        "fee": nano_from_coin(self.fee),
                        "memo": self.memo,
                    },
                )
                raw_tx = str((raw or {}).get("raw_transaction") or "")
                if not raw_tx:
                    log.error("[wallet] empty raw bond transaction for %s", address)
                    return ""

                signed = client.call(
                    "pactus.wallet.sign_raw_transaction",
                    {
                        "wallet_name": self.wallet_name,
                        "raw_transaction": raw_tx,
                        "password": self.wallet_password,
                    },
                )
                signed_tx = str((signed or {}).get("signed_raw_transaction") or "")
                if not signed_tx:
                    log.error("[wallet] wallet returned no signed transaction for %s", address)
                    return ""

                sent = client.call(
                    "pactus.transaction.broadcast_transaction",
                    {"signed_raw_transaction": signed_tx},
                )
                tx_hash = str((sent or {}).get("id") or "")
        except (NodeConnectionError, AttributeError) as e:
            log.error("[wallet] bond transaction to %s failed: %s", address, e)
            return ""

        if tx_hash:
            log.info("[wallet] bonded %s PAC to %s tx=%s", amount, address, tx_hash)
        return tx_hash
