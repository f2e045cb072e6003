"""Async SQLite identity store.

Uses ``aiosqlite`` for non-blocking database access with WAL mode and
dictionary-style row results.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite

from block_buddy.errors import DuplicateWalletError, NetworkError
from block_buddy.models import Identity, WalletRecord


class SqliteIdentityStore:
    """:class:`~block_buddy.stores.base.IdentityStore` over a local SQLite file.

    Parameters
    ----------
    db_path:
        Filesystem path to the SQLite database file.  The file (and any
        intermediate directories) will be created automatically on
        :meth:`connect` if they do not already exist.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the database connection, enable WAL mode, and run migrations."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))

        await self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.row_factory = sqlite3.Row
        await self._conn.execute("PRAGMA foreign_keys=ON;")

        await self._migrate()

    async def close(self) -> None:
        """Close the database connection gracefully."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "SqliteIdentityStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    async def _execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        assert self._conn is not None, "Store not connected. Call connect() first."
        cursor = await self._conn.execute(sql, params)
        await self._conn.commit()
        return cursor

    async def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        assert self._conn is not None, "Store not connected. Call connect() first."
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    # ------------------------------------------------------------------
    # IdentityStore
    # ------------------------------------------------------------------

    async def upsert_identity(self, handle: str) -> Identity:
        existing = await self.find_identity(handle)
        if existing is not None:
            return existing
        identity = Identity(handle=handle)
        await self._execute(
            "INSERT OR IGNORE INTO identities (id, handle, created_at) VALUES (?, ?, ?)",
            (identity.id, identity.handle, identity.created_at.isoformat()),
        )
        # Another writer may have won the race on the unique handle.
        stored = await self.find_identity(handle)
        if stored is None:
            raise NetworkError(f"Identity {handle} missing after insert")
        return stored

    async def find_identity(self, handle: str) -> Optional[Identity]:
        row = await self._fetch_one(
            "SELECT id, handle, created_at FROM identities WHERE handle = ?", (handle,)
        )
        return Identity.model_validate(row) if row else None

    async def find_wallet_record(self, identity_id: str, chain: str) -> Optional[WalletRecord]:
        row = await self._fetch_one(
            "SELECT * FROM wallets WHERE identity_id = ? AND chain = ?",
            (identity_id, chain),
        )
        return WalletRecord.model_validate(row) if row else None

    async def insert_wallet_record(self, record: WalletRecord) -> WalletRecord:
        try:
            await self._execute(
                "INSERT INTO wallets "
                "(id, identity_id, chain, address, encrypted_private_key, "
                "encrypted_mnemonic, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.identity_id,
                    record.chain,
                    record.address,
                    record.encrypted_private_key,
                    record.encrypted_mnemonic,
                    record.created_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateWalletError(
                f"Identity {record.identity_id} already has a {record.chain} wallet"
            ) from exc
        return record

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    async def _migrate(self) -> None:
        """Create all required tables if they do not already exist."""
        assert self._conn is not None

        await self._conn.executescript(
            """\
            CREATE TABLE IF NOT EXISTS identities (
                id TEXT PRIMARY KEY,
                handle TEXT UNIQUE NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS wallets (
                id TEXT PRIMARY KEY,
                identity_id TEXT NOT NULL,
                chain TEXT NOT NULL,
                address TEXT NOT NULL,
                encrypted_private_key TEXT,
                encrypted_mnemonic TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (identity_id, chain),
                FOREIGN KEY (identity_id) REFERENCES identities(id)
            );
            """
        )
        await self._conn.commit()
