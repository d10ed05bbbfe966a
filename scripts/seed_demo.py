"""
Demo data seeding script for the query relay.

Creates the `student` table read by the default relay query and fills it
with deterministic pseudo-random rows, including NULLs and empty strings so
the text normalization and null marker can be checked end to end.
"""

from __future__ import annotations

import random
import sys
import time
from datetime import UTC, datetime, timedelta

import psycopg
import typer

from query_relay.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Create and seed the demo `student` table in Postgres.")

FIRST_NAMES = ["Alice", "Bob", "Carol", "Dmitri", "Eun-ji", "Farah", "Gustavo", "Hiro"]

CREATE_SQL = """
CREATE TABLE IF NOT EXISTS public.student (
    id          INTEGER PRIMARY KEY,
    name        TEXT NOT NULL,
    score       INTEGER,
    nickname    TEXT,
    enrolled_at TIMESTAMPTZ NOT NULL
)
"""


def _generate_students(rows: int, seed: int) -> list[tuple]:
    rng = random.Random(seed)
    base = datetime(2024, 9, 1, tzinfo=UTC)
    students: list[tuple] = []
    for student_id in range(1, rows + 1):
        score = rng.randint(40, 100) if rng.random() > 0.1 else None
        nickname = rng.choice([None, "", rng.choice(FIRST_NAMES).lower()])
        students.append(
            (
                student_id,
                rng.choice(FIRST_NAMES),
                score,
                nickname,
                base + timedelta(days=rng.randint(0, 365), seconds=rng.randint(0, 86_399)),
            )
        )
    return students


def _seed(dsn: str, students: list[tuple], truncate: bool) -> None:
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            cur.execute(CREATE_SQL)
            if truncate:
                cur.execute("TRUNCATE TABLE public.student")
            cur.executemany(
                "INSERT INTO public.student (id, name, score, nickname, enrolled_at) "
                "VALUES (%s, %s, %s, %s, %s) ON CONFLICT (id) DO NOTHING",
                students,
            )
        conn.commit()


@app.command()
def main(
    rows: int = typer.Option(10, "--rows", "-r", min=0, help="Number of students to insert."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    truncate: bool = typer.Option(
        True, "--truncate/--append", help="Empty the table before inserting."
    ),
) -> None:
    """
    Create the demo table and insert synthetic students.
    """
    start = time.perf_counter()
    students = _generate_students(rows, seed)
    _seed(dsn or build_dsn(), students, truncate)
    typer.echo(f"Seeded {len(students):,} students in {time.perf_counter() - start:.2f}s")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
