"""
Database triggers that keep denormalized Activity counters in sync.

Counters move only on INSERT and DELETE of the source row. Soft-deleting a
comment is an UPDATE, so soft-deleted comments stay counted.
"""

from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class CounterTrigger:
    """A counter column on ``target_table`` tracking rows of ``source_table``."""

    source_table: str
    fk_column: str
    target_table: str
    counter_column: str

    @property
    def name(self) -> str:
        return f"sync_{self.target_table}_{self.counter_column}"


COUNTER_TRIGGERS: Tuple[CounterTrigger, ...] = (
    CounterTrigger("likes", "activity_id", "activities", "likes_count"),
    CounterTrigger("comments", "activity_id", "activities", "comments_count"),
)


def postgresql_ddl(trigger: CounterTrigger) -> List[str]:
    t = trigger
    return [
        f"""
        CREATE OR REPLACE FUNCTION {t.name}() RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'INSERT' AND NEW.{t.fk_column} IS NOT NULL THEN
                UPDATE {t.target_table} SET {t.counter_column} = {t.counter_column} + 1
                WHERE id = NEW.{t.fk_column};
            ELSIF TG_OP = 'DELETE' AND OLD.{t.fk_column} IS NOT NULL THEN
                UPDATE {t.target_table} SET {t.counter_column} = GREATEST({t.counter_column} - 1, 0)
                WHERE id = OLD.{t.fk_column};
            END IF;
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql
        """,
        f"DROP TRIGGER IF EXISTS trg_{t.name} ON {t.source_table}",
        f"""
        CREATE TRIGGER trg_{t.name}
        AFTER INSERT OR DELETE ON {t.source_table}
        FOR EACH ROW EXECUTE FUNCTION {t.name}()
        """,
    ]


def postgresql_drop_ddl(trigger: CounterTrigger) -> List[str]:
    return [
        f"DROP TRIGGER IF EXISTS trg_{trigger.name} ON {trigger.source_table}",
        f"DROP FUNCTION IF EXISTS {trigger.name}()",
    ]


def sqlite_ddl(trigger: CounterTrigger) -> List[str]:
    t = trigger
    return [
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_{t.name}_insert
        AFTER INSERT ON {t.source_table}
        FOR EACH ROW WHEN NEW.{t.fk_column} IS NOT NULL
        BEGIN
            UPDATE {t.target_table} SET {t.counter_column} = {t.counter_column} + 1
            WHERE id = NEW.{t.fk_column};
        END
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_{t.name}_delete
        AFTER DELETE ON {t.source_table}
        FOR EACH ROW WHEN OLD.{t.fk_column} IS NOT NULL
        BEGIN
            UPDATE {t.target_table} SET {t.counter_column} = MAX({t.counter_column} - 1, 0)
            WHERE id = OLD.{t.fk_column};
        END
        """,
    ]


def sqlite_drop_ddl(trigger: CounterTrigger) -> List[str]:
    return [
        f"DROP TRIGGER IF EXISTS trg_{trigger.name}_insert",
        f"DROP TRIGGER IF EXISTS trg_{trigger.name}_delete",
    ]


_DIALECT_DDL = {
    "postgresql": (postgresql_ddl, postgresql_drop_ddl),
    "sqlite": (sqlite_ddl, sqlite_drop_ddl),
}


def create_ddl(dialect: str, trigger: CounterTrigger) -> List[str]:
    """Statements installing ``trigger``; empty for dialects without counter triggers."""
    if dialect not in _DIALECT_DDL:
        return []
    return _DIALECT_DDL[dialect][0](trigger)


def drop_ddl(dialect: str, trigger: CounterTrigger) -> List[str]:
    if dialect not in _DIALECT_DDL:
        return []
    return _DIALECT_DDL[dialect][1](trigger)
