"""
Local persistence for client state.

Two small JSON files live on the user's machine:
- a snapshot of the cached records, so a restart can show the last known
  figures before the first refresh completes
- presentational preferences (currency symbol, theme)

Neither is authoritative. The record store always wins on the next fetch.
A snapshot carries the owner it was written for and is only ever handed
back to that owner.
"""

from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from finora.models.state import FinanceState, Preferences, StateSnapshot


logger = structlog.get_logger(__name__)

# Anything that makes a local file unusable: bad JSON or schema, bad bytes, bad permissions
UNREADABLE_FILE_ERRORS = (ValidationError, UnicodeDecodeError, OSError)


class LocalSnapshotStore:
    """Reads and writes one owner's FinanceState as a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, state: FinanceState, owner: str) -> None:
        """
        Write the records of a state for an owner.

        Loading flags and error messages belong to the session and are
        not written.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = StateSnapshot(
            owner=owner,
            state=state.model_copy(update={"is_loading": False, "error": None}),
        )
        self._path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")

    def load(self, owner: str) -> Optional[FinanceState]:
        """
        Return the state saved for `owner`.

        None if there is no snapshot, it cannot be read, or it was written
        for someone else.
        """
        if not self._path.exists():
            return None
        try:
            snapshot = StateSnapshot.model_validate_json(self._path.read_text(encoding="utf-8"))
        except UNREADABLE_FILE_ERRORS as e:
            logger.warning("snapshot_unreadable", path=str(self._path), error=str(e))
            return None

        if snapshot.owner != owner:
            logger.warning("snapshot_owner_mismatch", path=str(self._path))
            return None
        return snapshot.state

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class PreferenceStore:
    """
    Presentational preferences persisted as JSON.

    Never consulted by the aggregation engine.
    """

    def __init__(self, path: Union[str, Path], default_currency: str = "₦"):
        self._path = Path(path)
        self._default_currency = default_currency

    def defaults(self) -> Preferences:
        return Preferences(currency_symbol=self._default_currency)

    def load(self) -> Preferences:
        """Saved preferences, or the defaults if none were saved."""
        if not self._path.exists():
            return self.defaults()
        try:
            return Preferences.model_validate_json(self._path.read_text(encoding="utf-8"))
        except UNREADABLE_FILE_ERRORS as e:
            logger.warning("preferences_unreadable", path=str(self._path), error=str(e))
            return self.defaults()

    def save(self, preferences: Preferences) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(preferences.model_dump_json(indent=2), encoding="utf-8")

    def update(self, **changes) -> Preferences:
        """Validate, save and return preferences with the given fields changed."""
        current = self.load()
        preferences = Preferences.model_validate({**current.model_dump(), **changes})
        self.save(preferences)
        return preferences
