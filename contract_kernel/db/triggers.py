"""
Module: contract_kernel.db.triggers
Responsibility: Installing and verifying database-level immutability triggers
    (layer 2 of 2).  This is the database complement to the ORM listeners in
    db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    - signatures rows: no UPDATE, no DELETE.
    - contract_events rows: no UPDATE, no DELETE.
    - contracts.contract_number: never changes once assigned.

Both PostgreSQL (plpgsql trigger functions) and SQLite (RAISE(ABORT) triggers)
are supported.  The DDL is kept per dialect below; each statement is executed
on its own because SQLite accepts one statement per execute.

Failure modes:
    - Trigger violation surfaces as IntegrityError / OperationalError (both
      sqlalchemy.exc.DatabaseError) from the statement that hit it.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

_TRIGGER_TABLES = {
    "trg_signature_immutability_update": "signatures",
    "trg_signature_immutability_delete": "signatures",
    "trg_contract_event_immutability_update": "contract_events",
    "trg_contract_event_immutability_delete": "contract_events",
    "trg_contract_number_immutability": "contracts",
}

ALL_TRIGGER_NAMES = list(_TRIGGER_TABLES)

_POSTGRES_INSTALL = [
    """
    CREATE OR REPLACE FUNCTION prevent_append_only_modification()
    RETURNS TRIGGER AS $$
    BEGIN
        RAISE EXCEPTION '% rows are append-only (id=%)', TG_TABLE_NAME, OLD.id;
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE OR REPLACE FUNCTION prevent_contract_number_change()
    RETURNS TRIGGER AS $$
    BEGIN
        IF NEW.contract_number IS DISTINCT FROM OLD.contract_number THEN
            RAISE EXCEPTION 'contract_number is immutable (contract id=%)', OLD.id;
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS trg_signature_immutability_update ON signatures",
    """
    CREATE TRIGGER trg_signature_immutability_update
    BEFORE UPDATE ON signatures
    FOR EACH ROW EXECUTE FUNCTION prevent_append_only_modification()
    """,
    "DROP TRIGGER IF EXISTS trg_signature_immutability_delete ON signatures",
    """
    CREATE TRIGGER trg_signature_immutability_delete
    BEFORE DELETE ON signatures
    FOR EACH ROW EXECUTE FUNCTION prevent_append_only_modification()
    """,
    "DROP TRIGGER IF EXISTS trg_contract_event_immutability_update ON contract_events",
    """
    CREATE TRIGGER trg_contract_event_immutability_update
    BEFORE UPDATE ON contract_events
    FOR EACH ROW EXECUTE FUNCTION prevent_append_only_modification()
    """,
    "DROP TRIGGER IF EXISTS trg_contract_event_immutability_delete ON contract_events",
    """
    CREATE TRIGGER trg_contract_event_immutability_delete
    BEFORE DELETE ON contract_events
    FOR EACH ROW EXECUTE FUNCTION prevent_append_only_modification()
    """,
    "DROP TRIGGER IF EXISTS trg_contract_number_immutability ON contracts",
    """
    CREATE TRIGGER trg_contract_number_immutability
    BEFORE UPDATE ON contracts
    FOR EACH ROW EXECUTE FUNCTION prevent_contract_number_change()
    """,
]

_SQLITE_INSTALL = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_signature_immutability_update
    BEFORE UPDATE ON signatures
    BEGIN
        SELECT RAISE(ABORT, 'signatures rows are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_signature_immutability_delete
    BEFORE DELETE ON signatures
    BEGIN
        SELECT RAISE(ABORT, 'signatures rows are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_contract_event_immutability_update
    BEFORE UPDATE ON contract_events
    BEGIN
        SELECT RAISE(ABORT, 'contract_events rows are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_contract_event_immutability_delete
    BEFORE DELETE ON contract_events
    BEGIN
        SELECT RAISE(ABORT, 'contract_events rows are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_contract_number_immutability
    BEFORE UPDATE OF contract_number ON contracts
    WHEN NEW.contract_number IS NOT OLD.contract_number
    BEGIN
        SELECT RAISE(ABORT, 'contract_number is immutable');
    END
    """,
]


def _drop_statements(engine: Engine) -> list[str]:
    if engine.dialect.name == "postgresql":
        return [
            f"DROP TRIGGER IF EXISTS {name} ON {table}" for name, table in _TRIGGER_TABLES.items()
        ] + [
            "DROP FUNCTION IF EXISTS prevent_append_only_modification()",
            "DROP FUNCTION IF EXISTS prevent_contract_number_change()",
        ]
    return [f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES]


def _install_statements(engine: Engine) -> list[str]:
    if engine.dialect.name == "postgresql":
        return _POSTGRES_INSTALL
    if engine.dialect.name == "sqlite":
        return _SQLITE_INSTALL
    raise RuntimeError(f"No immutability triggers for dialect {engine.dialect.name}")


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after metadata.create_all()).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Installation is idempotent.
    """
    with engine.connect() as conn:
        for statement in _install_statements(engine):
            conn.execute(text(statement))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the immutability triggers (and, on PostgreSQL, their functions).

    Only for teardown: the schema is about to be dropped or rebuilt.
    """
    with engine.connect() as conn:
        for statement in _drop_statements(engine):
            conn.execute(text(statement))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the immutability triggers currently present in the database."""
    if engine.dialect.name == "postgresql":
        query = text(
            "SELECT tgname FROM pg_trigger WHERE NOT tgisinternal ORDER BY tgname"
        )
    else:
        query = text(
            "SELECT name FROM sqlite_master WHERE type = 'trigger' ORDER BY name"
        )
    with engine.connect() as conn:
        names = [row[0] for row in conn.execute(query)]
    return [name for name in names if name in ALL_TRIGGER_NAMES]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return set(get_installed_triggers(engine)) == set(ALL_TRIGGER_NAMES)
