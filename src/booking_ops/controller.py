"""booking_ops.controller

OpsController owns a single OpsState and is its only writer.

Commands run one at a time behind a lock, so auto-created accounts and
hotels and the booking dedup set never race between concurrent pastes.
After each mutating command the TECH-block sweep runs (when enabled) and
the derived model is cached against the resulting state version.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Any, Callable

from booking_ops import ingest
from booking_ops.derive import DerivedModel, derive_model
from booking_ops.models import OpsState
from booking_ops.snapshot import export_state_by_email, import_snapshot

log = logging.getLogger(__name__)


class OpsController:
    def __init__(self, state: OpsState | None = None, today: Callable[[], date] | None = None) -> None:
        self._state = state or OpsState()
        self._today = today or date.today
        self._lock = threading.Lock()
        self._model: DerivedModel | None = None
        self._model_key: tuple[int, date] | None = None
        self.tech_blocks_written = 0

    @property
    def state(self) -> OpsState:
        return self._state

    @property
    def today(self) -> date:
        return self._today()

    def model(self) -> DerivedModel:
        """Derived view for the current state (cached per version and day)."""
        with self._lock:
            return self._model_locked()

    def _model_locked(self) -> DerivedModel:
        key = (self._state.version, self._today())
        if self._model is None or self._model_key != key:
            self._model = derive_model(self._state, today=key[1])
            self._model_key = key
        return self._model

    def _commit(self, next_state: OpsState) -> OpsState:
        """Adopt next_state, then persist any TECH blocks it produces."""
        self._state = next_state
        swept, changed = ingest.apply_tech_blocks(
            self._state, self._model_locked(), today=self._today()
        )
        if changed:
            self._state = swept
        self.tech_blocks_written = changed
        return self._state

    def _run(self, command: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            result = command(self._state, *args, **kwargs)
            if isinstance(result, tuple):
                next_state, summary = result
                self._commit(next_state)
                return summary
            self._commit(result)
            return None

    # -- paste commands -----------------------------------------------------

    def ingest_bookings(self, text: str) -> ingest.ImportSummary:
        return self._run(ingest.ingest_booking_paste, text, today=self._today())

    def ingest_accounts(self, text: str) -> ingest.PasteSummary:
        return self._run(ingest.ingest_accounts_paste, text, today=self._today())

    def ingest_spend(self, text: str) -> ingest.PasteSummary:
        return self._run(ingest.ingest_spend_paste, text)

    def ingest_blocked(self, text: str) -> ingest.PasteSummary:
        return self._run(ingest.ingest_blocked_paste, text, today=self._today())

    # -- manual edits -------------------------------------------------------

    def update_settings(self, patch: dict[str, Any]) -> None:
        self._run(ingest.update_settings, patch)

    def update_account(self, email: str, /, **patch: Any) -> None:
        self._run(ingest.update_account, email, **patch)

    def update_hotel(self, hotel_id: str, /, **patch: Any) -> None:
        self._run(ingest.update_hotel, hotel_id, **patch)

    def update_booking(self, booking_id: str, /, **patch: Any) -> None:
        self._run(ingest.update_booking, booking_id, **patch)

    def add_sale(self, spent_on: str, email: str, amount: Any, note: str = "") -> None:
        self._run(ingest.add_sale, spent_on, email, amount, note)

    def add_special_reward(self, email: str, amount: Any, promo: str = "") -> None:
        self._run(ingest.add_special_reward, email, amount, promo, today=self._today())

    # -- snapshots ----------------------------------------------------------

    def export_snapshot(self) -> dict[str, Any]:
        with self._lock:
            return export_state_by_email(self._state)

    def import_snapshot(self, payload: Any) -> None:
        """Replace the state; a malformed payload leaves it untouched."""
        with self._lock:
            next_state = import_snapshot(payload, current=self._state)
            log.info("Snapshot imported: %d account(s)", len(next_state.accounts))
            self._commit(next_state)
