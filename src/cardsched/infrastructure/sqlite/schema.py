"""SQLite schema of a collection file."""

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS col (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    ver INTEGER NOT NULL,
    crt INTEGER NOT NULL,
    mod INTEGER NOT NULL DEFAULT 0,
    usn INTEGER NOT NULL DEFAULT 0,
    cur_deck INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS dconf (
    id INTEGER PRIMARY KEY,
    config TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS decks (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    conf INTEGER NOT NULL DEFAULT 1,
    new_day INTEGER NOT NULL DEFAULT 0,
    new_count INTEGER NOT NULL DEFAULT 0,
    rev_day INTEGER NOT NULL DEFAULT 0,
    rev_count INTEGER NOT NULL DEFAULT 0,
    lrn_day INTEGER NOT NULL DEFAULT 0,
    lrn_count INTEGER NOT NULL DEFAULT 0,
    time_day INTEGER NOT NULL DEFAULT 0,
    time_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS notes (
    id INTEGER PRIMARY KEY,
    tags TEXT NOT NULL DEFAULT '',
    mod INTEGER NOT NULL DEFAULT 0,
    usn INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS cards (
    id INTEGER PRIMARY KEY,
    nid INTEGER NOT NULL,
    did INTEGER NOT NULL,
    queue INTEGER NOT NULL DEFAULT 0,
    type INTEGER NOT NULL DEFAULT 0,
    due INTEGER NOT NULL DEFAULT 0,
    ivl INTEGER NOT NULL DEFAULT 0,
    factor INTEGER NOT NULL DEFAULT 0,
    reps INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    "left" INTEGER NOT NULL DEFAULT 0,
    last_ivl INTEGER NOT NULL DEFAULT 0,
    edue INTEGER NOT NULL DEFAULT 0,
    mod INTEGER NOT NULL DEFAULT 0,
    usn INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS ix_cards_sched ON cards (did, queue, due);
CREATE INDEX IF NOT EXISTS ix_cards_nid ON cards (nid);

CREATE TABLE IF NOT EXISTS revlog (
    id INTEGER PRIMARY KEY,
    cid INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    ease INTEGER NOT NULL,
    ivl INTEGER NOT NULL,
    last_ivl INTEGER NOT NULL,
    factor INTEGER NOT NULL,
    time INTEGER NOT NULL,
    type INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_revlog_cid ON revlog (cid);
"""
