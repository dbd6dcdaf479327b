from __future__ import annotations

from datetime import datetime, timedelta
import json
import logging
import sqlite3
from typing import Any, Callable

from ...constants import DRAFT_EXPIRY_DAYS, MAX_DRAFTS
from .transactions_repo import DomainError

_log = logging.getLogger(__name__)


class DraftsRepo:
    """
    Saved, unfinished transactions keyed by a client-minted draft id.

    Saving the same id again overwrites that draft (last save wins, no merge).
    Only the newest MAX_DRAFTS are kept and drafts untouched for
    DRAFT_EXPIRY_DAYS are dropped.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = datetime.now,
        max_drafts: int = MAX_DRAFTS,
        expiry_days: int = DRAFT_EXPIRY_DAYS,
    ):
        self.conn = conn
        self._clock = clock
        self.max_drafts = max_drafts
        self.expiry_days = expiry_days

    def _now(self) -> str:
        return self._clock().isoformat(timespec="seconds")

    # ---- Writes -----------------------------------------------------------

    def upsert(self, draft_id: str, name: str, form_data: dict[str, Any]) -> str:
        if not (draft_id or "").strip():
            raise DomainError("Draft id is required.")
        items = form_data.get("items") or []
        total = form_data.get("total_amount")
        if total is None:
            total = sum(float(i.get("total_price") or 0.0) for i in items)
        now = self._now()
        with self.conn:
            self.conn.execute(
                "INSERT INTO drafts(draft_id, name, customer_name, item_count, total_amount, "
                "form_data, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(draft_id) DO UPDATE SET "
                "  name=excluded.name, customer_name=excluded.customer_name, "
                "  item_count=excluded.item_count, total_amount=excluded.total_amount, "
                "  form_data=excluded.form_data, updated_at=excluded.updated_at",
                (
                    draft_id, name, form_data.get("customer_name") or "", len(items),
                    float(total), json.dumps(form_data, default=str), now, now,
                ),
            )
            self._trim()
        return draft_id

    def delete(self, draft_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM drafts WHERE draft_id = ?", (draft_id,))

    def prune_expired(self) -> int:
        cutoff = (self._clock() - timedelta(days=self.expiry_days)).isoformat(timespec="seconds")
        with self.conn:
            cur = self.conn.execute("DELETE FROM drafts WHERE updated_at < ?", (cutoff,))
        if cur.rowcount:
            _log.info("Pruned %d expired draft(s)", cur.rowcount)
        return cur.rowcount

    def _trim(self) -> None:
        self.conn.execute(
            "DELETE FROM drafts WHERE draft_id NOT IN ("
            "  SELECT draft_id FROM drafts ORDER BY updated_at DESC, rowid DESC LIMIT ?)",
            (int(self.max_drafts),),
        )

    # ---- Reads ------------------------------------------------------------

    def list_drafts(self) -> list[dict]:
        """Newest first, after dropping expired ones."""
        self.prune_expired()
        rows = self.conn.execute(
            "SELECT draft_id, name, customer_name, item_count, total_amount, created_at, updated_at "
            "FROM drafts ORDER BY updated_at DESC, rowid DESC"
        ).fetchall()
        return [dict(r) for r in rows]

    def get(self, draft_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT form_data FROM drafts WHERE draft_id = ?", (draft_id,)
        ).fetchone()
        return json.loads(row["form_data"]) if row else None

    def count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) AS n FROM drafts").fetchone()["n"])
