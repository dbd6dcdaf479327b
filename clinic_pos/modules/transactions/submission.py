"""
Submission control for one editing session.

Public interface
----------------
- SubmissionController.submit(session) -> bool
- SubmissionController.save_draft(session, name=None, autosave=False) -> bool
- SubmissionController.end_session() -> None

Only one backend write (create, update or draft save) may be in flight. The
guard is a plain flag set synchronously before the job is queued, so a second
click that arrives before the first job finishes is refused on the spot.
The flag is cleared in ``finally`` blocks on every exit path: validation
rejection, success, failure.

Backend calls run on a QThreadPool worker; results come back to the UI thread
through a queued signal. ``end_session`` bumps a token so a result arriving
after the dialog closed is dropped instead of applied.
"""
from __future__ import annotations

from datetime import datetime
import logging
import random
import string
import time
from typing import Any, Callable

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal, Slot

from .backend import PosBackend
from .errors import ValidationFailed
from .session import TransactionSession

_log = logging.getLogger(__name__)

SUBMIT = "submit"
SAVE_DRAFT = "save_draft"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_draft_id() -> str:
    """draft_<epoch ms>_<9 random chars>"""
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"draft_{int(time.time() * 1000)}_{suffix}"


def default_draft_name(session: TransactionSession) -> str:
    who = (session.form.customer_name or "").strip() or "Walk-in"
    return f"Draft - {who} - {datetime.now():%Y-%m-%d %H:%M}"


def _fmt_err(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


class _JobSignals(QObject):
    # token, action, ok, result (value on success, message on failure)
    done = Signal(int, str, bool, object)


class _JobRunnable(QRunnable):
    """Runs one backend call and always reports back, success or not."""

    def __init__(self, token: int, action: str, work: Callable[[], Any], signals: _JobSignals) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self._token = token
        self._action = action
        self._work = work
        self._signals = signals

    @Slot()
    def run(self) -> None:  # type: ignore[override]
        try:
            result = self._work()
        except Exception as e:
            _log.exception("%s failed", self._action)
            self._signals.done.emit(self._token, self._action, False, _fmt_err(e))
        else:
            self._signals.done.emit(self._token, self._action, True, result)


class SubmissionController(QObject):
    started = Signal(str)
    succeeded = Signal(str, object)   # action, transaction id / draft id
    failed = Signal(str, object)      # action, list[str]
    blocked = Signal(str)
    busyChanged = Signal(bool)

    def __init__(self, backend: PosBackend, pool: QThreadPool | None = None, parent=None):
        super().__init__(parent)
        self._backend = backend
        self._pool = pool or QThreadPool.globalInstance()
        self._signals = _JobSignals(self)
        self._signals.done.connect(self._on_done)
        self._busy = False
        self._token = 0
        self._draft_id: str | None = None
        self._pending_snapshot: str | None = None
        self._saved_snapshot: str | None = None

    # ---- State ----

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def draft_id(self) -> str | None:
        return self._draft_id

    def adopt_draft(self, draft_id: str | None, snapshot: str | None = None) -> None:
        """Continue an existing draft instead of minting a new one."""
        self._draft_id = draft_id
        self._saved_snapshot = snapshot

    def _acquire(self, action: str) -> bool:
        if self._busy:
            _log.info("Ignoring %s: another save is still in progress", action)
            self.blocked.emit(action)
            return False
        self._busy = True
        self.busyChanged.emit(True)
        return True

    def _release(self) -> None:
        if self._busy:
            self._busy = False
            self.busyChanged.emit(False)

    # ---- Actions ----

    def submit(self, session: TransactionSession) -> bool:
        """
        Validate and send the transaction. Returns False when refused (busy or
        invalid); the outcome of an accepted call arrives via signals.
        """
        if not self._acquire(SUBMIT):
            return False
        dispatched = False
        try:
            payload = session.build_payload()
            tx_id = session.transaction_id
            draft_id = self._draft_id
            backend = self._backend

            def work():
                if tx_id:
                    result = backend.update_transaction(tx_id, payload)
                else:
                    result = backend.create_transaction(payload)
                # best effort: the transaction is already stored
                if draft_id:
                    try:
                        backend.delete_draft(draft_id)
                    except Exception:
                        _log.exception("Saved %s but could not delete draft %s", result, draft_id)
                return result

            self._dispatch(SUBMIT, work)
            dispatched = True
        except ValidationFailed as e:
            self.failed.emit(SUBMIT, e.errors)
        finally:
            if not dispatched:
                self._release()
        return dispatched

    def save_draft(self, session: TransactionSession, name: str | None = None, autosave: bool = False) -> bool:
        """
        Upsert the session as a draft. The first save mints the draft id and
        every later save of this session reuses it. Autosaves are skipped when
        nothing changed since the last successful save, or when there is
        nothing to save yet.
        """
        snapshot = session.snapshot()
        if autosave and (not session.items or snapshot == self._saved_snapshot):
            return False
        if not self._acquire(SAVE_DRAFT):
            return False
        dispatched = False
        try:
            data = session.draft_data()
            if self._draft_id is None:
                self._draft_id = new_draft_id()
            draft_id = self._draft_id
            label = name or default_draft_name(session)
            backend = self._backend
            self._pending_snapshot = snapshot
            self._dispatch(SAVE_DRAFT, lambda: backend.save_draft(draft_id, label, data))
            dispatched = True
        except ValidationFailed as e:
            self.failed.emit(SAVE_DRAFT, e.errors)
        finally:
            if not dispatched:
                self._release()
        return dispatched

    def end_session(self) -> None:
        """Forget the draft id, release the guard and ignore late results."""
        self._token += 1
        self._draft_id = None
        self._pending_snapshot = None
        self._saved_snapshot = None
        self._release()

    # ---- Worker plumbing ----

    def _dispatch(self, action: str, work: Callable[[], Any]) -> None:
        self.started.emit(action)
        self._pool.start(_JobRunnable(self._token, action, work, self._signals))

    def _on_done(self, token: int, action: str, ok: bool, result: Any) -> None:
        if token != self._token:
            _log.debug("Dropping %s result from a closed session", action)
            return
        try:
            if ok:
                if action == SAVE_DRAFT:
                    self._draft_id = result or self._draft_id
                    self._saved_snapshot = self._pending_snapshot
                else:
                    self._draft_id = None
                    self._saved_snapshot = None
                self.succeeded.emit(action, result)
            else:
                self.failed.emit(action, [result])
        finally:
            self._pending_snapshot = None
            self._release()
