"""SQLite-backed data provider for agents, dispositions, and customer history."""

from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .models import (
    DISPOSITION_MODIFIERS,
    PAYMENT,
    SALE,
    Agent,
    Customer,
    DataSnapshot,
    Disposition,
    DispositionEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_AGENT_NUMBER = 0
DEFAULT_DISPOSITION_ID = "disp-0"

DEFAULT_DISPOSITIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("30 Day", ("TimeOut",)),
    ("7 Day", ("TimeOut",)),
    ("Appointment", ()),
    ("Cant Talk", ()),
    ("Credit", (PAYMENT, SALE, "Invoice")),
    ("Flag", ("Invoice",)),
    ("Junk", ("ExcludeCount",)),
    ("Kick Out", ("TimeOut", "Cancel")),
    ("Processed", (PAYMENT, SALE, "Invoice")),
    ("Ran", (PAYMENT,)),
    ("ReMail", ("Invoice",)),
    ("Remove", ("DNC",)),
    ("Sale", (SALE, "Invoice")),
    ("Turndown", ("TimeOut",)),
    ("Verified Credit", (PAYMENT, SALE, "Invoice")),
    ("Verified Sale", (SALE, "Invoice")),
    ("Voicemail", ()),
    ("Will Mail", ("TimeOut",)),
    ("Abandon", ()),
    ("AMD Hangup", ()),
    ("AMD Silence", ()),
    ("Answering Machine", ()),
    ("Broadcasted", ()),
    ("Busy", ("ExcludeCount",)),
    ("Cancel Order", ("Cancel",)),
    ("Disconnected", ("ExcludeCount",)),
    ("Failed", ("ExcludeCount",)),
    ("IVR Script Finished", ()),
    ("No Answer", ()),
    ("Not Complete", ()),
    ("Preview Call Refused", ()),
)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _lastrowid(cursor: sqlite3.Cursor) -> int:
    row_id = cursor.lastrowid
    if row_id is None:
        raise RuntimeError("Insert did not return a row id.")
    return row_id


def disposition_id_for(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"disp-{slug}"


def _encode_modifiers(modifiers: Iterable[str]) -> str:
    cleaned: list[str] = []
    for modifier in modifiers:
        if modifier not in DISPOSITION_MODIFIERS:
            raise ValueError(
                f"Unknown disposition modifier {modifier!r}. "
                f"Expected one of: {', '.join(DISPOSITION_MODIFIERS)}."
            )
        if modifier not in cleaned:
            cleaned.append(modifier)
    return ",".join(cleaned)


def _decode_modifiers(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(token for token in value.split(",") if token)


class DashboardStore:
    """Persistence operations for agents, dispositions, customers, and disposition history.

    Every write bumps a persisted generation counter so cached metrics can
    tell when the underlying data changed.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def init_db(self) -> None:
        with self._connect() as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS store_meta (
                    key TEXT PRIMARY KEY,
                    value INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS agents (
                    agent_number INTEGER PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT,
                    phone TEXT,
                    email TEXT,
                    is_default INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS dispositions (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    modifiers TEXT NOT NULL DEFAULT '',
                    is_default INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS customers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    first_name TEXT,
                    last_name TEXT,
                    phone TEXT NOT NULL,
                    business_residential TEXT NOT NULL DEFAULT '',
                    cold_pc TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS disposition_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id INTEGER NOT NULL,
                    disposition_id TEXT NOT NULL,
                    agent_number INTEGER NOT NULL,
                    amount REAL,
                    occurred_at TEXT NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (customer_id) REFERENCES customers(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_history_customer
                    ON disposition_history (customer_id, occurred_at);
                """
            )
            connection.execute(
                "INSERT OR IGNORE INTO store_meta (key, value) VALUES ('generation', 0)"
            )

            has_agents = connection.execute("SELECT COUNT(*) AS count FROM agents").fetchone()["count"]
            if int(has_agents) == 0:
                connection.execute(
                    """
                    INSERT INTO agents (agent_number, first_name, last_name, is_default)
                    VALUES (?, ?, ?, 1)
                    """,
                    (DEFAULT_AGENT_NUMBER, "Office", ""),
                )

            has_dispositions = connection.execute(
                "SELECT COUNT(*) AS count FROM dispositions"
            ).fetchone()["count"]
            if int(has_dispositions) == 0:
                connection.execute(
                    """
                    INSERT INTO dispositions (id, name, modifiers, is_default)
                    VALUES (?, ?, '', 1)
                    """,
                    (DEFAULT_DISPOSITION_ID, "No Disposition"),
                )
                connection.executemany(
                    "INSERT INTO dispositions (id, name, modifiers) VALUES (?, ?, ?)",
                    [
                        (disposition_id_for(name), name, _encode_modifiers(modifiers))
                        for name, modifiers in DEFAULT_DISPOSITIONS
                    ],
                )
                logger.info("Seeded %d default dispositions", len(DEFAULT_DISPOSITIONS) + 1)

    # -------------------------------------------------------------------------
    # Generation counter
    # -------------------------------------------------------------------------

    def _bump_generation(self, connection: sqlite3.Connection) -> None:
        connection.execute(
            "UPDATE store_meta SET value = value + 1 WHERE key = 'generation'"
        )

    @property
    def generation(self) -> int:
        with self._connect() as connection:
            row = connection.execute(
                "SELECT value FROM store_meta WHERE key = 'generation'"
            ).fetchone()
        return int(row["value"]) if row is not None else 0

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def add_agent(
        self,
        agent_number: int,
        first_name: str,
        last_name: str | None,
        phone: str | None = None,
        email: str | None = None,
    ) -> int:
        clean_first = _clean(first_name)
        if not clean_first:
            raise ValueError("Agents require a first name.")
        if agent_number < 0:
            raise ValueError("Agent number cannot be negative.")

        with self._connect() as connection:
            try:
                connection.execute(
                    """
                    INSERT INTO agents (agent_number, first_name, last_name, phone, email)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (agent_number, clean_first, _clean(last_name), _clean(phone), _clean(email)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Agent number {agent_number} is already in use.") from exc
            self._bump_generation(connection)

        logger.info("Added agent %s", agent_number)
        return agent_number

    def list_agents(self) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM agents ORDER BY agent_number ASC"
            ).fetchall()

    def agent_lookup(self) -> dict[int, Agent]:
        return {
            int(row["agent_number"]): Agent(
                agent_number=int(row["agent_number"]),
                first_name=row["first_name"],
                last_name=row["last_name"] or "",
            )
            for row in self.list_agents()
        }

    # -------------------------------------------------------------------------
    # Dispositions
    # -------------------------------------------------------------------------

    def add_disposition(
        self,
        name: str,
        modifiers: Iterable[str],
        disposition_id: str | None = None,
    ) -> str:
        clean_name = _clean(name)
        if not clean_name:
            raise ValueError("Dispositions require a name.")
        encoded = _encode_modifiers(modifiers)
        new_id = _clean(disposition_id) or disposition_id_for(clean_name)

        with self._connect() as connection:
            try:
                connection.execute(
                    "INSERT INTO dispositions (id, name, modifiers) VALUES (?, ?, ?)",
                    (new_id, clean_name, encoded),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Disposition {clean_name!r} already exists.") from exc
            self._bump_generation(connection)

        logger.info("Added disposition %s (%s)", new_id, encoded or "no modifiers")
        return new_id

    def list_dispositions(self) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM dispositions ORDER BY is_default DESC, name ASC"
            ).fetchall()

    def disposition_lookup(self) -> dict[str, Disposition]:
        return {
            row["id"]: Disposition(
                id=row["id"],
                name=row["name"],
                modifiers=_decode_modifiers(row["modifiers"]),
            )
            for row in self.list_dispositions()
        }

    # -------------------------------------------------------------------------
    # Customers and history
    # -------------------------------------------------------------------------

    def add_customer(
        self,
        first_name: str | None,
        last_name: str | None,
        phone: str,
        business_residential: str | None = None,
        cold_pc: str | None = None,
    ) -> int:
        clean_phone = _clean(phone)
        if not clean_phone:
            raise ValueError("Customers require a phone number.")

        with self._connect() as connection:
            cursor = connection.execute(
                """
                INSERT INTO customers (
                    first_name,
                    last_name,
                    phone,
                    business_residential,
                    cold_pc
                )
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    _clean(first_name),
                    _clean(last_name),
                    clean_phone,
                    _clean(business_residential) or "",
                    _clean(cold_pc) or "",
                ),
            )
            customer_id = _lastrowid(cursor)
            self._bump_generation(connection)
        return customer_id

    def get_customer(self, customer_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM customers WHERE id = ?",
                (customer_id,),
            ).fetchone()

    def list_customers(self) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT
                    c.*,
                    (
                        SELECT COUNT(*)
                        FROM disposition_history h
                        WHERE h.customer_id = c.id
                    ) AS history_count,
                    (
                        SELECT MAX(occurred_at)
                        FROM disposition_history h
                        WHERE h.customer_id = c.id
                    ) AS last_disposition_at
                FROM customers c
                ORDER BY c.created_at DESC, c.id DESC
                """
            ).fetchall()

    def record_disposition(
        self,
        customer_id: int,
        disposition_id: str,
        agent_number: int,
        occurred_at: datetime,
        amount: float | None = None,
        notes: str | None = None,
    ) -> int:
        if amount is not None and amount < 0:
            raise ValueError("Disposition amount cannot be negative.")

        with self._connect() as connection:
            customer = connection.execute(
                "SELECT id FROM customers WHERE id = ?",
                (customer_id,),
            ).fetchone()
            if customer is None:
                raise ValueError(f"Customer {customer_id} does not exist.")
            disposition = connection.execute(
                "SELECT id FROM dispositions WHERE id = ?",
                (disposition_id,),
            ).fetchone()
            if disposition is None:
                raise ValueError(f"Disposition {disposition_id!r} does not exist.")

            cursor = connection.execute(
                """
                INSERT INTO disposition_history (
                    customer_id,
                    disposition_id,
                    agent_number,
                    amount,
                    occurred_at,
                    notes
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    customer_id,
                    disposition_id,
                    agent_number,
                    amount,
                    occurred_at.isoformat(),
                    _clean(notes),
                ),
            )
            history_id = _lastrowid(cursor)
            self._bump_generation(connection)

        logger.debug(
            "Recorded %s for customer %s by agent %s", disposition_id, customer_id, agent_number
        )
        return history_id

    def list_history(self, customer_id: int, sales_and_payments_only: bool = False) -> list[sqlite3.Row]:
        """Newest-first history for one customer with disposition and agent names joined in.

        Unknown dispositions and agents come back with NULL names.
        """
        money_filter = ""
        if sales_and_payments_only:
            money_filter = (
                "AND (',' || d.modifiers || ',' LIKE '%,Sale,%' "
                "OR ',' || d.modifiers || ',' LIKE '%,Payment,%')"
            )
        with self._connect() as connection:
            return connection.execute(
                f"""
                SELECT
                    h.*,
                    d.name AS disposition_name,
                    d.modifiers AS disposition_modifiers,
                    a.first_name AS agent_first_name,
                    a.last_name AS agent_last_name
                FROM disposition_history h
                LEFT JOIN dispositions d ON d.id = h.disposition_id
                LEFT JOIN agents a ON a.agent_number = h.agent_number
                WHERE h.customer_id = ?
                {money_filter}
                ORDER BY h.occurred_at DESC, h.id DESC
                """,
                (customer_id,),
            ).fetchall()

    def customers_with_history(self) -> tuple[Customer, ...]:
        with self._connect() as connection:
            customer_rows = connection.execute(
                "SELECT * FROM customers ORDER BY id ASC"
            ).fetchall()
            history_rows = connection.execute(
                """
                SELECT *
                FROM disposition_history
                ORDER BY customer_id ASC, occurred_at ASC, id ASC
                """
            ).fetchall()

        history: dict[int, list[DispositionEvent]] = {}
        for row in history_rows:
            history.setdefault(int(row["customer_id"]), []).append(
                DispositionEvent(
                    disposition_id=row["disposition_id"],
                    agent_number=int(row["agent_number"]),
                    amount=row["amount"],
                    occurred_at=datetime.fromisoformat(row["occurred_at"]),
                )
            )

        return tuple(
            Customer(
                id=str(row["id"]),
                business_residential=row["business_residential"] or "",
                cold_pc=row["cold_pc"] or "",
                disposition_history=tuple(history.get(int(row["id"]), [])),
                first_name=row["first_name"] or "",
                last_name=row["last_name"] or "",
                phone=row["phone"],
            )
            for row in customer_rows
        )

    def snapshot(self) -> DataSnapshot:
        generation = self.generation
        return DataSnapshot(
            customers=self.customers_with_history(),
            dispositions=self.disposition_lookup(),
            agents=self.agent_lookup(),
            generation=generation,
        )
