# faucet_store.py
"""
Durable record of faucet claims, keyed by network peer identity.

One row per peer identity, ever. The PRIMARY KEY plus a single INSERT inside
BEGIN IMMEDIATE gives atomic insert-if-absent across threads and processes,
so two concurrent requests for the same peer can never both get a row.

A row without a tx hash is a reservation for a transfer in flight. One older
than the reservation TTL belongs to a process that died before sending or
releasing it; it is ignored by lookups and replaced by the next reservation.
"""
import logging
import sqlite3
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from faucet_errors import AlreadyExists

log = logging.getLogger(__name__)

RESERVATION_TTL_SEC = 600


@dataclass(frozen=True)
class ClaimRecord:
    peer_id: str
    validator_address: str
    username: str
    user_id: str
    amount: Decimal
    created_at: int
    tx_hash: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return dict(
            peer_id=self.peer_id,
            validator_address=self.validator_address,
            username=self.username,
            user_id=self.user_id,
            amount=str(self.amount),
            created_at=self.created_at,
            tx_hash=self.tx_hash,
        )


def _row_to_record(r: sqlite3.Row) -> ClaimRecord:
    return ClaimRecord(
        peer_id=str(r["peer_id"]),
        validator_address=str(r["validator_address"]),
        username=str(r["username"] or ""),
        user_id=str(r["user_id"] or ""),
        amount=Decimal(str(r["amount"])),
        created_at=int(r["created_at"]),
        tx_hash=str(r["tx_hash"]) if r["tx_hash"] else None,
    )


class ClaimStore:
    def __init__(self, db_path: str, reservation_ttl_sec: int = RESERVATION_TTL_SEC):
        self.db_path = db_path
        self.reservation_ttl_sec = int(reservation_ttl_sec)

    def _expired(self, r: sqlite3.Row, now: int) -> bool:
        return not r["tx_hash"] and int(r["created_at"]) < now - self.reservation_ttl_sec

    def db(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)  # autocommit
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA journal_mode=WAL;")
        con.execute("PRAGMA synchronous=NORMAL;")
        con.execute("PRAGMA busy_timeout=30000;")
        return con

    def init_db(self) -> None:
        con = self.db()
        try:
            con.execute("""
            CREATE TABLE IF NOT EXISTS faucet_claims (
              peer_id TEXT PRIMARY KEY,
              validator_address TEXT NOT NULL,
              username TEXT NOT NULL,
              user_id TEXT NOT NULL,
              amount TEXT NOT NULL,
              created_at INTEGER NOT NULL,
              tx_hash TEXT
            );
            """)
            con.execute("CREATE INDEX IF NOT EXISTS idx_faucet_claims_created ON faucet_claims(created_at);")
        finally:
            con.close()

    def get_data(self, peer_id: str) -> Tuple[Optional[ClaimRecord], bool]:
        con = self.db()
        try:
            row = con.execute(
                "SELECT * FROM faucet_claims WHERE peer_id=?",
                (peer_id,),
            ).fetchone()
        finally:
            con.close()
        if row is None or self._expired(row, int(time.time())):
            return None, False
        return _row_to_record(row), True

    def set_data(
        self,
        peer_id: str,
        validator_address: str,
        username: str,
        user_id: str,
        amount: Decimal,
    ) -> ClaimRecord:
        """Insert a claim for `peer_id`; raise AlreadyExists if one is stored."""
        ts = int(time.time())
        con = self.db()
        try:
            con.execute("BEGIN IMMEDIATE;")
            stale = con.execute(
                "DELETE FROM faucet_claims WHERE peer_id=? AND tx_hash IS NULL AND created_at < ?",
                (peer_id, ts - self.reservation_ttl_sec),
            ).rowcount
            if stale:
                log.warning("[store] replacing expired reservation peer=%s", peer_id)
            try:
                con.execute(
                    "INSERT INTO faucet_claims(peer_id, validator_address, username, user_id, amount, created_at, tx_hash) "
                    "VALUES(?,?,?,?,?,?,NULL)",
                    (peer_id, validator_address, username, user_id, str(amount), ts),
                )
            except sqlite3.IntegrityError:
                con.execute("ROLLBACK;")
                raise AlreadyExists(peer_id)
            con.execute("COMMIT;")
        except AlreadyExists:
            raise
        except Exception:
            if con.in_transaction:
                con.execute("ROLLBACK;")
            raise
        finally:
            con.close()

        log.info("[store] claim reserved peer=%s address=%s user=%s", peer_id, validator_address, username)
        return ClaimRecord(
            peer_id=peer_id,
            validator_address=validator_address,
            username=username,
            user_id=user_id,
            amount=Decimal(str(amount)),
            created_at=ts,
        )

    def attach_transaction(self, peer_id: str, tx_hash: str) -> bool:
        """Set the claim's tx hash once. Returns False if nothing was updated."""
        con = self.db()
        try:
            cur = con.execute(
                "UPDATE faucet_claims SET tx_hash=? WHERE peer_id=? AND tx_hash IS NULL",
                (tx_hash, peer_id),
            )
            return cur.rowcount > 0
        finally:
            con.close()

    def discard(self, peer_id: str) -> bool:
        """Drop a reservation whose transfer never went out."""
        con = self.db()
        try:
            cur = con.execute(
                "DELETE FROM faucet_claims WHERE peer_id=? AND tx_hash IS NULL",
                (peer_id,),
            )
            return cur.rowcount > 0
        finally:
            con.close()

    def count_claims(self) -> int:
        con = self.db()
        try:
            row = con.execute("SELECT COUNT(*) FROM faucet_claims").fetchone()
            return int(row[0]) if row else 0
        finally:
            con.close()

    def list_claims(self, limit: int = 50, offset: int = 0) -> List[ClaimRecord]:
        limit = int(limit)
        offset = int(offset)
        if limit < 1:
            limit = 1
        if limit > 500:
            limit = 500
        if offset < 0:
            offset = 0

        con = self.db()
        try:
            rows = con.execute(
                "SELECT * FROM faucet_claims ORDER BY created_at DESC, peer_id ASC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        finally:
            con.close()
        return [_row_to_record(r) for r in rows]
