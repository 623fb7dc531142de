"""Repository adapters - Identity store implementations."""

from .memory import InMemoryIdentityStore
from .postgres import PostgresIdentityStore, run_migrations

__all__ = ["InMemoryIdentityStore", "PostgresIdentityStore", "run_migrations"]
