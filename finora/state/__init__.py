"""Client state package."""

from finora.state.container import FinanceStore, describe_error
from finora.state.persistence import LocalSnapshotStore, PreferenceStore

__all__ = [
    "FinanceStore",
    "LocalSnapshotStore",
    "PreferenceStore",
    "describe_error",
]
