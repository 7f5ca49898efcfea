from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import aiosqlite

from core.errors import StorageUnavailable
from core.models import AttachResult, SubscribeResult, TrackedWallet, UnsubscribeResult, User

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    telegram_id INTEGER PRIMARY KEY,
    username TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS tracked_wallets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chain_ticker TEXT NOT NULL,
    address TEXT NOT NULL,
    alias TEXT,
    stream_id TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    UNIQUE (chain_ticker, address)
);
CREATE TABLE IF NOT EXISTS wallet_subscribers (
    wallet_id INTEGER NOT NULL REFERENCES tracked_wallets(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL,
    created_at REAL NOT NULL,
    PRIMARY KEY (wallet_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_wallet_subscribers_user ON wallet_subscribers (user_id);
"""

_WALLET_SELECT = """
SELECT w.id, w.chain_ticker, w.address, w.alias, w.stream_id,
       (SELECT group_concat(ws.user_id) FROM wallet_subscribers ws WHERE ws.wallet_id = w.id) AS subscribers
FROM tracked_wallets w
"""


def _wallet_from_row(row) -> TrackedWallet:
    subs = row["subscribers"] or ""
    return TrackedWallet(
        chain_ticker=row["chain_ticker"],
        address=row["address"],
        subscribers=frozenset(int(s) for s in str(subs).split(",") if s),
        alias=row["alias"],
        stream_id=row["stream_id"],
    )


class SubscriptionStore:
    """
    SQLite-backed mapping of (chain, address) -> subscribers + stream id.

    Every mutation is one BEGIN IMMEDIATE transaction on its own connection,
    so read-modify-write on a wallet key is linearized by SQLite's write
    lock and a failure rolls back the whole change. Nothing is cached
    between calls.
    """

    def __init__(self, path: str, busy_timeout: float = 10.0):
        self.path = path
        self.busy_timeout = busy_timeout

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            db = await aiosqlite.connect(self.path, timeout=self.busy_timeout, isolation_level=None)
        except aiosqlite.Error as e:
            raise StorageUnavailable(f"cannot open {self.path}: {e}") from e
        try:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db
        except aiosqlite.Error as e:
            logger.error("Store operation failed on %s: %s", self.path, e)
            raise StorageUnavailable(f"store error: {e}") from e
        finally:
            await db.close()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")

    async def init(self) -> None:
        async with self._connect() as db:
            # readers (webhook dispatch) don't wait on writers (chat commands)
            await db.execute("PRAGMA journal_mode=WAL")
            await db.executescript(SCHEMA)

    # -----------------------------
    # users
    # -----------------------------
    async def upsert_user(self, user_id: int, username: Optional[str] = None) -> User:
        now = time.time()
        async with self._transaction() as db:
            await db.execute(
                """
                INSERT INTO users (telegram_id, username, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (telegram_id) DO UPDATE
                SET username = excluded.username, updated_at = excluded.updated_at
                """,
                (user_id, username, now, now),
            )
        return User(telegram_id=user_id, username=username)

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self._connect() as db:
            cur = await db.execute("SELECT telegram_id, username FROM users WHERE telegram_id = ?", (user_id,))
            row = await cur.fetchone()
        if row is None:
            return None
        return User(telegram_id=row["telegram_id"], username=row["username"])

    # -----------------------------
    # wallets
    # -----------------------------
    async def _load(self, db: aiosqlite.Connection, chain_ticker: str, address: str) -> Optional[TrackedWallet]:
        cur = await db.execute(
            _WALLET_SELECT + " WHERE w.chain_ticker = ? AND w.address = ?",
            (chain_ticker, address),
        )
        row = await cur.fetchone()
        return _wallet_from_row(row) if row else None

    async def subscribe(
        self,
        user_id: int,
        chain_ticker: str,
        address: str,
        alias: Optional[str] = None,
    ) -> SubscribeResult:
        chain_ticker = chain_ticker.upper()
        now = time.time()
        async with self._transaction() as db:
            cur = await db.execute(
                """
                INSERT INTO tracked_wallets (chain_ticker, address, alias, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (chain_ticker, address) DO NOTHING
                """,
                (chain_ticker, address, alias, now, now),
            )
            created = cur.rowcount == 1

            cur = await db.execute(
                """
                INSERT INTO wallet_subscribers (wallet_id, user_id, created_at)
                SELECT id, ?, ? FROM tracked_wallets WHERE chain_ticker = ? AND address = ?
                ON CONFLICT (wallet_id, user_id) DO NOTHING
                """,
                (user_id, now, chain_ticker, address),
            )
            already = cur.rowcount == 0
            wallet = await self._load(db, chain_ticker, address)

        return SubscribeResult(created=created, already_subscribed=already, wallet=wallet)

    async def unsubscribe(self, user_id: int, chain_ticker: str, address: str) -> UnsubscribeResult:
        chain_ticker = chain_ticker.upper()
        async with self._transaction() as db:
            wallet = await self._load(db, chain_ticker, address)
            if wallet is None or user_id not in wallet.subscribers:
                return UnsubscribeResult(removed=False, deleted=False, wallet=wallet)

            remaining = wallet.subscribers - {user_id}
            if remaining:
                await db.execute(
                    """
                    DELETE FROM wallet_subscribers
                    WHERE user_id = ? AND wallet_id = (
                        SELECT id FROM tracked_wallets WHERE chain_ticker = ? AND address = ?
                    )
                    """,
                    (user_id, chain_ticker, address),
                )
                await db.execute(
                    "UPDATE tracked_wallets SET updated_at = ? WHERE chain_ticker = ? AND address = ?",
                    (time.time(), chain_ticker, address),
                )
                return UnsubscribeResult(
                    removed=True,
                    deleted=False,
                    wallet=TrackedWallet(
                        chain_ticker=wallet.chain_ticker,
                        address=wallet.address,
                        subscribers=remaining,
                        alias=wallet.alias,
                        stream_id=wallet.stream_id,
                    ),
                )

            # last subscriber: the record goes, subscriber rows cascade
            await db.execute(
                "DELETE FROM tracked_wallets WHERE chain_ticker = ? AND address = ?",
                (chain_ticker, address),
            )

        return UnsubscribeResult(
            removed=True,
            deleted=True,
            wallet=TrackedWallet(
                chain_ticker=wallet.chain_ticker,
                address=wallet.address,
                alias=wallet.alias,
                stream_id=wallet.stream_id,
            ),
            stream_id=wallet.stream_id,
        )

    async def find_by_chain_and_address(self, chain_ticker: str, address: str) -> Optional[TrackedWallet]:
        async with self._connect() as db:
            return await self._load(db, chain_ticker.upper(), address)

    async def list_for_user(self, user_id: int, chain_filter: Optional[str] = None) -> List[TrackedWallet]:
        sql = _WALLET_SELECT + " JOIN wallet_subscribers s ON s.wallet_id = w.id WHERE s.user_id = ?"
        params: list = [user_id]
        if chain_filter:
            sql += " AND w.chain_ticker = ?"
            params.append(chain_filter.upper())
        sql += " ORDER BY w.chain_ticker, w.created_at"
        async with self._connect() as db:
            cur = await db.execute(sql, params)
            rows = await cur.fetchall()
        return [_wallet_from_row(r) for r in rows]

    async def list_pending_streams(self) -> List[TrackedWallet]:
        async with self._connect() as db:
            cur = await db.execute(_WALLET_SELECT + " WHERE w.stream_id IS NULL ORDER BY w.created_at")
            rows = await cur.fetchall()
        return [_wallet_from_row(r) for r in rows]

    async def attach_stream_id(self, chain_ticker: str, address: str, stream_id: str) -> AttachResult:
        """Fill in the stream id once. Never overwrites an id set by a concurrent provisioning."""
        chain_ticker = chain_ticker.upper()
        async with self._transaction() as db:
            cur = await db.execute(
                """
                UPDATE tracked_wallets SET stream_id = ?, updated_at = ?
                WHERE chain_ticker = ? AND address = ? AND stream_id IS NULL
                """,
                (stream_id, time.time(), chain_ticker, address),
            )
            if cur.rowcount == 1:
                return AttachResult.ATTACHED

            cur = await db.execute(
                "SELECT stream_id FROM tracked_wallets WHERE chain_ticker = ? AND address = ?",
                (chain_ticker, address),
            )
            row = await cur.fetchone()

        if row is None:
            return AttachResult.MISSING
        if row["stream_id"] == stream_id:
            return AttachResult.ATTACHED
        return AttachResult.ALREADY_SET
