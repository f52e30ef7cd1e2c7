"""
SQLite implementations of the store ports.

Every statement is parameterized. The only SQL text assembled at runtime is
the `?` list of an IN clause and ORDER BY clauses taken from a fixed table.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

from cardsched.domain.config import DeckConfig, RevOrder
from cardsched.domain.errors import CardNotFoundError, ConfigError, StorageError
from cardsched.domain.models import (
    Card,
    CardType,
    CounterKind,
    Deck,
    DeckCounters,
    Note,
    Queue,
    ReviewLogEntry,
    ReviewType,
)
from cardsched.domain.ports import CardStore, DeckStore, NoteStore, ReviewLogStore

if TYPE_CHECKING:
    from cardsched.infrastructure.sqlite.collection import SqliteCollection

logger = logging.getLogger(__name__)

CARD_COLUMNS = 'id, nid, did, queue, type, due, ivl, factor, reps, lapses, "left", last_ivl, edue, mod, usn'

REVIEW_ORDER = {
    RevOrder.DUE: "ORDER BY due, id",
    RevOrder.OLD_FIRST: "ORDER BY ivl DESC, id",
    RevOrder.NEW_FIRST: "ORDER BY ivl, id",
}


def placeholders(values: list) -> str:
    """`?, ?, ?` for an IN clause over `values`."""
    return ", ".join("?" for _ in values)


class SqliteCardStore(CardStore):
    def __init__(self, col: "SqliteCollection"):
        self.col = col

    @staticmethod
    def _to_card(row: Any) -> Card:
        return Card(
            id=row["id"],
            nid=row["nid"],
            did=row["did"],
            queue=Queue(row["queue"]),
            type=CardType(row["type"]),
            due=row["due"],
            ivl=row["ivl"],
            factor=row["factor"],
            reps=row["reps"],
            lapses=row["lapses"],
            left=row["left"],
            last_ivl=row["last_ivl"],
            edue=row["edue"],
            mod=row["mod"],
            usn=row["usn"],
        )

    def get(self, cid: int) -> Card:
        row = self.col.execute(f"SELECT {CARD_COLUMNS} FROM cards WHERE id = ?", (cid,)).fetchone()
        if row is None:
            raise CardNotFoundError(cid)
        return self._to_card(row)

    def update(self, card: Card) -> None:
        cur = self.col.execute(
            """
            UPDATE cards SET did = ?, queue = ?, type = ?, due = ?, ivl = ?, factor = ?,
                reps = ?, lapses = ?, "left" = ?, last_ivl = ?, edue = ?, mod = ?, usn = ?
            WHERE id = ?
            """,
            (
                card.did,
                int(card.queue),
                int(card.type),
                card.due,
                card.ivl,
                card.factor,
                card.reps,
                card.lapses,
                card.left,
                card.last_ivl,
                card.edue,
                card.mod,
                card.usn,
                card.id,
            ),
        )
        if cur.rowcount == 0:
            raise CardNotFoundError(card.id)

    def add(self, nid: int, did: int, cid: int | None = None, **fields: Any) -> Card:
        """
        Insert a card. New cards without an explicit `due` share their note's
        position, or go after every existing new card.
        """
        if "due" not in fields:
            row = self.col.execute(
                "SELECT due FROM cards WHERE nid = ? AND type = 0 LIMIT 1", (nid,)
            ).fetchone()
            fields["due"] = row["due"] if row else self.max_new_position() + 1
        card = Card(id=cid or 0, nid=nid, did=did, **fields)
        cur = self.col.execute(
            f"INSERT INTO cards ({CARD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                cid,
                nid,
                did,
                int(card.queue),
                int(card.type),
                card.due,
                card.ivl,
                card.factor,
                card.reps,
                card.lapses,
                card.left,
                card.last_ivl,
                card.edue,
                card.mod,
                card.usn,
            ),
        )
        card.id = cur.lastrowid
        return card

    # ---------- Counting & fetching ----------

    def count_new(self, did: int, limit: int) -> int:
        # A negative LIMIT means no limit to SQLite
        if limit <= 0:
            return 0
        return self.col.execute(
            "SELECT count(*) FROM (SELECT 1 FROM cards WHERE did = ? AND queue = 0 LIMIT ?)",
            (did, limit),
        ).fetchone()[0]

    def count_review(self, did: int, today: int, limit: int) -> int:
        if limit <= 0:
            return 0
        return self.col.execute(
            "SELECT count(*) FROM (SELECT 1 FROM cards WHERE did = ? AND queue = 2 AND due <= ? LIMIT ?)",
            (did, today, limit),
        ).fetchone()[0]

    def sum_learning_left(self, dids: list[int], cutoff: int, limit: int) -> int:
        if limit <= 0 or not dids:
            return 0
        total = self.col.execute(
            f"""
            SELECT sum("left") FROM (
                SELECT "left" FROM cards
                WHERE did IN ({placeholders(dids)}) AND queue = 1 AND due <= ? LIMIT ?
            )
            """,
            (*dids, cutoff, limit),
        ).fetchone()[0]
        return total or 0

    def fetch_new(self, did: int, limit: int) -> list[tuple[int, int]]:
        if limit <= 0:
            return []
        rows = self.col.execute(
            "SELECT due, id FROM cards WHERE did = ? AND queue = 0 ORDER BY due, id LIMIT ?",
            (did, limit),
        ).fetchall()
        return [(row["due"], row["id"]) for row in rows]

    def fetch_learning(self, dids: list[int], cutoff: int, limit: int) -> list[tuple[int, int]]:
        if limit <= 0 or not dids:
            return []
        rows = self.col.execute(
            f"""
            SELECT due, id FROM cards
            WHERE did IN ({placeholders(dids)}) AND queue = 1 AND due <= ?
            ORDER BY due, id LIMIT ?
            """,
            (*dids, cutoff, limit),
        ).fetchall()
        return [(row["due"], row["id"]) for row in rows]

    def fetch_review(self, did: int, today: int, limit: int, order: RevOrder) -> list[int]:
        if limit <= 0:
            return []
        rows = self.col.execute(
            f"SELECT id FROM cards WHERE did = ? AND queue = 2 AND due <= ? {REVIEW_ORDER[order]} LIMIT ?",
            (did, today, limit),
        ).fetchall()
        return [row["id"] for row in rows]

    def sibling_review_dues(self, nid: int, exclude_cid: int) -> set[int]:
        rows = self.col.execute(
            "SELECT due FROM cards WHERE nid = ? AND id != ? AND queue = 2", (nid, exclude_cid)
        ).fetchall()
        return {row["due"] for row in rows}

    def count_in(
        self, dids: list[int], card_type: CardType | None = None, min_ivl: int = 0
    ) -> int:
        sql = f"SELECT count(*) FROM cards WHERE did IN ({placeholders(dids)}) AND ivl >= ?"
        params: list[Any] = [*dids, min_ivl]
        if card_type is not None:
            sql += " AND type = ?"
            params.append(int(card_type))
        return self.col.execute(sql, params).fetchone()[0]

    def ids_for_note(self, nid: int) -> list[int]:
        rows = self.col.execute("SELECT id FROM cards WHERE nid = ? ORDER BY id", (nid,)).fetchall()
        return [row["id"] for row in rows]

    # ---------- Bulk updates ----------

    def set_queue(self, cids: list[int], queue: Queue, mod: int, usn: int) -> None:
        self.col.execute(
            f"UPDATE cards SET queue = ?, mod = ?, usn = ? WHERE id IN ({placeholders(cids)})",
            (int(queue), mod, usn, *cids),
        )

    def restore_queue_from_type(
        self, queues: list[Queue], mod: int, usn: int, cids: list[int] | None = None
    ) -> int:
        sql = f"UPDATE cards SET queue = type, mod = ?, usn = ? WHERE queue IN ({placeholders(queues)})"
        params: list[Any] = [mod, usn, *(int(q) for q in queues)]
        if cids is not None:
            sql += f" AND id IN ({placeholders(cids)})"
            params.extend(cids)
        return self.col.execute(sql, params).rowcount

    def restore_failed(self, cids: list[int] | None, mod: int, usn: int) -> None:
        sql = """
            UPDATE cards SET due = edue, edue = 0, queue = 2, "left" = 0, mod = ?, usn = ?
            WHERE queue = 1 AND type = 2
        """
        params: list[Any] = [mod, usn]
        if cids is not None:
            sql += f" AND id IN ({placeholders(cids)})"
            params.extend(cids)
        self.col.execute(sql, params)

    def reset_to_new(self, cids: list[int], mod: int, usn: int) -> None:
        self.col.execute(
            f"""
            UPDATE cards SET type = 0, queue = 0, due = 0, ivl = 0, "left" = 0, edue = 0,
                mod = ?, usn = ?
            WHERE id IN ({placeholders(cids)})
            """,
            (mod, usn, *cids),
        )

    def max_new_position(self) -> int:
        return self.col.execute("SELECT coalesce(max(due), 0) FROM cards WHERE type = 0").fetchone()[0]

    def new_note_ids(self, cids: list[int]) -> list[int]:
        rows = self.col.execute(
            f"SELECT DISTINCT nid FROM cards WHERE type = 0 AND id IN ({placeholders(cids)}) ORDER BY nid",
            cids,
        ).fetchall()
        return [row["nid"] for row in rows]

    def min_new_position_from(self, start: int, exclude: list[int]) -> int | None:
        return self.col.execute(
            f"SELECT min(due) FROM cards WHERE due >= ? AND type = 0 AND id NOT IN ({placeholders(exclude)})",
            (start, *exclude),
        ).fetchone()[0]

    def shift_new_positions(self, low: int, by: int, exclude: list[int], mod: int, usn: int) -> None:
        self.col.execute(
            f"""
            UPDATE cards SET due = due + ?, mod = ?, usn = ?
            WHERE id NOT IN ({placeholders(exclude)}) AND due >= ? AND queue = 0
            """,
            (by, mod, usn, *exclude, low),
        )

    def set_new_positions(self, positions: dict[int, int], cids: list[int], mod: int, usn: int) -> None:
        rows = self.col.execute(
            f"SELECT id, nid FROM cards WHERE type = 0 AND id IN ({placeholders(cids)})", cids
        ).fetchall()
        for row in rows:
            self.col.execute(
                "UPDATE cards SET due = ?, mod = ?, usn = ? WHERE id = ?",
                (positions[row["nid"]], mod, usn, row["id"]),
            )


class SqliteDeckStore(DeckStore):
    def __init__(self, col: "SqliteCollection"):
        self.col = col
        # Parsed once per configuration group
        self._configs: dict[int, DeckConfig] = {}

    @staticmethod
    def _to_deck(row: Any) -> Deck:
        counters = {
            f"{kind.value}_today": DeckCounters(row[f"{kind.value}_day"], row[f"{kind.value}_count"])
            for kind in CounterKind
        }
        return Deck(id=row["id"], name=row["name"], conf_id=row["conf"], **counters)

    def get(self, did: int) -> Deck:
        row = self.col.execute("SELECT * FROM decks WHERE id = ?", (did,)).fetchone()
        if row is None:
            raise StorageError(f"Deck {did} not found")
        return self._to_deck(row)

    def by_name(self, name: str) -> Deck | None:
        row = self.col.execute("SELECT * FROM decks WHERE name = ?", (name,)).fetchone()
        return self._to_deck(row) if row else None

    def all(self) -> list[Deck]:
        rows = self.col.execute("SELECT * FROM decks ORDER BY name").fetchall()
        return [self._to_deck(row) for row in rows]

    def parents(self, did: int) -> list[Deck]:
        path = self.get(did).path
        parents = []
        for i in range(1, len(path)):
            parent = self.by_name("::".join(path[:i]))
            if parent:
                parents.append(parent)
        return parents

    def children(self, did: int) -> list[Deck]:
        prefix = self.get(did).name + "::"
        return [deck for deck in self.all() if deck.name.startswith(prefix)]

    def selected(self) -> int:
        return self.col.execute("SELECT cur_deck FROM col").fetchone()["cur_deck"]

    def select(self, did: int) -> None:
        self.get(did)
        self.col.execute("UPDATE col SET cur_deck = ?", (did,))

    def active(self) -> list[int]:
        did = self.selected()
        return [did] + [child.id for child in self.children(did)]

    def config_for(self, did: int) -> DeckConfig:
        deck = self.get(did)
        if deck.conf_id not in self._configs:
            row = self.col.execute("SELECT config FROM dconf WHERE id = ?", (deck.conf_id,)).fetchone()
            if row is None:
                raise ConfigError(deck.name, "conf", f"configuration group {deck.conf_id} does not exist")
            self._configs[deck.conf_id] = DeckConfig.load(row["config"], deck.name)
        return self._configs[deck.conf_id]

    def save(self, deck: Deck) -> None:
        self.col.execute(
            """
            UPDATE decks SET name = ?, conf = ?,
                new_day = ?, new_count = ?, rev_day = ?, rev_count = ?,
                lrn_day = ?, lrn_count = ?, time_day = ?, time_count = ?
            WHERE id = ?
            """,
            (
                deck.name,
                deck.conf_id,
                deck.new_today.day,
                deck.new_today.count,
                deck.rev_today.day,
                deck.rev_today.count,
                deck.lrn_today.day,
                deck.lrn_today.count,
                deck.time_today.day,
                deck.time_today.count,
                deck.id,
            ),
        )

    def add(self, name: str, conf_id: int = 1, did: int | None = None) -> Deck:
        """Create a deck, and any missing parents, returning the existing one if present."""
        existing = self.by_name(name)
        if existing:
            return existing
        parts = name.split("::")
        for i in range(1, len(parts)):
            self.add("::".join(parts[:i]), conf_id)
        cur = self.col.execute(
            "INSERT INTO decks (id, name, conf) VALUES (?, ?, ?)", (did, name, conf_id)
        )
        return self.get(cur.lastrowid)

    def add_config(self, data: DeckConfig | dict[str, Any]) -> int:
        """
        Store a configuration group as JSON, replacing one with the same id.

        Raw mappings are stored unvalidated; they are checked when a deck
        using them is first scheduled.
        """
        if isinstance(data, DeckConfig):
            data = data.model_dump(mode="json")
        conf_id = data.get("id")
        if conf_id is None:
            conf_id = self.col.execute("SELECT coalesce(max(id), 0) + 1 FROM dconf").fetchone()[0]
            data = {**data, "id": conf_id}
        self.col.execute(
            "INSERT OR REPLACE INTO dconf (id, config) VALUES (?, ?)", (conf_id, json.dumps(data))
        )
        self._configs.pop(conf_id, None)
        return conf_id


class SqliteNoteStore(NoteStore):
    def __init__(self, col: "SqliteCollection"):
        self.col = col

    def get(self, nid: int) -> Note:
        row = self.col.execute("SELECT id, tags, mod, usn FROM notes WHERE id = ?", (nid,)).fetchone()
        if row is None:
            raise StorageError(f"Note {nid} not found")
        return Note(id=row["id"], tags=row["tags"].split(), mod=row["mod"], usn=row["usn"])

    def save(self, note: Note) -> None:
        self.col.execute(
            "UPDATE notes SET tags = ?, mod = ?, usn = ? WHERE id = ?",
            (" ".join(note.tags), note.mod, note.usn, note.id),
        )

    def add(self, tags: list[str] | None = None, nid: int | None = None) -> Note:
        cur = self.col.execute(
            "INSERT INTO notes (id, tags) VALUES (?, ?)", (nid, " ".join(tags or []))
        )
        return self.get(cur.lastrowid)


class SqliteReviewLogStore(ReviewLogStore):
    def __init__(self, col: "SqliteCollection"):
        self.col = col

    def append(self, entry: ReviewLogEntry) -> None:
        # A duplicate id surfaces as StorageConflictError from execute()
        self.col.execute(
            """
            INSERT INTO revlog (id, cid, usn, ease, ivl, last_ivl, factor, time, type)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.cid,
                entry.usn,
                entry.ease,
                entry.ivl,
                entry.last_ivl,
                entry.factor,
                entry.time,
                int(entry.type),
            ),
        )

    def for_card(self, cid: int) -> list[ReviewLogEntry]:
        rows = self.col.execute(
            "SELECT id, cid, usn, ease, ivl, last_ivl, factor, time, type FROM revlog WHERE cid = ? ORDER BY id",
            (cid,),
        ).fetchall()
        return [
            ReviewLogEntry(
                id=row["id"],
                cid=row["cid"],
                usn=row["usn"],
                ease=row["ease"],
                ivl=row["ivl"],
                last_ivl=row["last_ivl"],
                factor=row["factor"],
                time=row["time"],
                type=ReviewType(row["type"]),
            )
            for row in rows
        ]
