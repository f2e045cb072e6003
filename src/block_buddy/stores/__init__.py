"""Identity-store implementations: local SQLite and remote Hasura."""

from block_buddy.stores.base import IdentityStore
from block_buddy.stores.hasura import HasuraIdentityStore
from block_buddy.stores.sqlite import SqliteIdentityStore

__all__ = [
    "IdentityStore",
    "HasuraIdentityStore",
    "SqliteIdentityStore",
]
