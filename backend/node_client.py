# node_client.py
"""
Read-only client for a Pactus node's JSON-RPC endpoint.

A NodeClient is opened for one logical operation (a status report, one
eligibility check) and closed afterwards; nothing is cached between calls so
every answer reflects the node's current view.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import base58
import requests
from pydantic import ValidationError

from faucet_errors import NodeConnectionError, PeerNotFound
from faucet_models import BlockchainInfoOut, NetworkInfoOut, PeerInfoOut

log = logging.getLogger(__name__)

# multihash codes accepted as libp2p peer ids
MH_IDENTITY = 0x00
MH_SHA2_256 = 0x12
MAX_INLINE_KEY_LEN = 42


def _read_uvarint(buf: bytes, pos: int) -> Tuple[int, int]:
    value = 0
    shift = 0
    while True:
        if pos >= len(buf):
            raise ValueError("truncated varint")
        b = buf[pos]
        pos += 1
        value |= (b & 0x7F) << shift
        if b < 0x80:
            return value, pos
        shift += 7
        if shift > 63:
            raise ValueError("varint overflow")


def peer_identity_from_bytes(raw: bytes) -> str:
    """Validate a libp2p peer id multihash and return its base58 string form."""
    if not raw:
        raise ValueError("empty peer id")
    code, pos = _read_uvarint(raw, 0)
    length, pos = _read_uvarint(raw, pos)
    if len(raw) - pos != length:
        raise ValueError("multihash length mismatch")
    if code == MH_SHA2_256:
        if length != 32:
            raise ValueError("sha2-256 digest must be 32 bytes")
    elif code == MH_IDENTITY:
        if length == 0 or length > MAX_INLINE_KEY_LEN:
            raise ValueError("identity multihash has bad length")
    else:
        raise ValueError(f"unsupported multihash code: {code:#x}")
    return base58.b58encode(raw).decode()


def decode_peer_id(value: str) -> bytes:
    """Peer ids arrive base64 encoded (protobuf bytes) or already base58 encoded."""
    value = (value or "").strip()
    if not value:
        return b""
    try:
        raw = base64.b64decode(value, validate=True)
        peer_identity_from_bytes(raw)
        return raw
    except (binascii.Error, ValueError):
        pass
    try:
        return base58.b58decode(value)
    except ValueError:
        return b""


class NodeClient:
    """JSON-RPC client bound to a single node endpoint."""

    def __init__(self, endpoint: str, timeout: int = 10):
        parsed = urlparse(endpoint or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise NodeConnectionError(f"invalid node endpoint: {endpoint!r}")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._next_id = 0
        log.debug("[node] establishing new connection addr=%s", endpoint)

    def __enter__(self) -> "NodeClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a JSON-RPC method and return its `result`.

        Some gateways return HTTP 500 for ordinary JSON-RPC errors, so the
        body is parsed first and the RPC error message surfaced.
        """
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params or {}}
        try:
            r = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NodeConnectionError(f"{method} request failed: {e}") from e

        try:
            j = r.json()
        except ValueError:
            raise NodeConnectionError(f"{method} non-json response (http {r.status_code}); body={(r.text or '').strip()[:300]}")

        if isinstance(j, dict) and j.get("error"):
            err = j.get("error")
            if isinstance(err, dict):
                raise NodeConnectionError(f"{method} rpc error {err.get('code')}: {err.get('message')}")
            raise NodeConnectionError(f"{method} rpc error: {err}")

        if r.status_code >= 400:
            raise NodeConnectionError(f"{method} http {r.status_code}: {(r.text or '').strip()[:300]}")

        if not isinstance(j, dict):
            raise NodeConnectionError(f"{method} invalid json result type: {type(j).__name__}")
        return j.get("result")

    def _parse(self, model, method: str, params: Optional[Dict[str, Any]] = None):
        result = self.call(method, params)
        if not isinstance(result, dict) or not result:
            raise NodeConnectionError(f"{method} empty or malformed result: {result!r}")
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise NodeConnectionError(f"{method} malformed result: {e}") from e

    def get_blockchain_info(self) -> BlockchainInfoOut:
        return self._parse(BlockchainInfoOut, "pactus.blockchain.get_blockchain_info")

    def get_blockchain_height(self) -> int:
        return int(self.get_blockchain_info().last_block_height)

    def get_network_info(self) -> NetworkInfoOut:
        return self._parse(NetworkInfoOut, "pactus.network.get_network_info", {"only_connected": True})

    def get_account_balance(self, address: str) -> int:
        """Account balance in NanoPAC."""
        result = self.call("pactus.blockchain.get_account", {"address": address})
        account = result.get("account") if isinstance(result, dict) else None
        if not isinstance(account, dict):
            raise NodeConnectionError(f"get_account returned no account for {address}: {result!r}")
        try:
            # zero balances are omitted from the node's JSON
            return int(account.get("balance") or 0)
        except (TypeError, ValueError) as e:
            raise NodeConnectionError(f"get_account malformed balance: {e}") from e

    def get_peer_info(self, consensus_address: str) -> Tuple[PeerInfoOut, str]:
        """Find the connected peer advertising `consensus_address`.

        Returns (peer, public_key) where public_key is the consensus key at
        the same position as the matching address. The network info has no
        index by address, so every connected peer is scanned.
        """
        info = self.get_network_info()
        for peer in info.connected_peers:
            for i, addr in enumerate(peer.consensus_addresses):
                if addr and addr == consensus_address:
                    pub = peer.consensus_keys[i] if i < len(peer.consensus_keys) else ""
                    return peer, pub
        raise PeerNotFound(consensus_address)
