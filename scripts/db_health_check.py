#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, inspect, text


EXPECTED_HEAD = "0003_active_checkin_guard"
REQUIRED_TABLES = ("users", "clients", "employee_clients", "checkins", "audit_logs")


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    tables = set(inspect(engine).get_table_names())
    with engine.connect() as conn:
        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})

        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing_tables else "ok", {"tables": missing_tables})

        if "checkins" in tables:
            duplicate_active = conn.execute(
                text(
                    """
                    select employee_id, count(*)
                    from checkins
                    where status = 'checked_in'
                    group by employee_id
                    having count(*) > 1
                    """
                )
            ).fetchall()
            add(
                "duplicate_active_checkins",
                "fail" if duplicate_active else "ok",
                {"rows": [list(row) for row in duplicate_active]},
            )

            inconsistent_status = conn.execute(
                text(
                    """
                    select id
                    from checkins
                    where (status = 'checked_out' and checkout_time is null)
                       or (status = 'checked_in' and checkout_time is not null)
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "checkin_status_consistency",
                "fail" if inconsistent_status else "ok",
                {"sample_ids": [row[0] for row in inconsistent_status]},
            )

            orphan_employees = conn.execute(
                text(
                    """
                    select ch.id
                    from checkins ch
                    left join users u on u.id = ch.employee_id
                    where u.id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "checkin_orphan_employee",
                "fail" if orphan_employees else "ok",
                {"sample_ids": [row[0] for row in orphan_employees]},
            )

            unassigned_checkins = conn.execute(
                text(
                    """
                    select ch.id
                    from checkins ch
                    left join employee_clients ec
                      on ec.employee_id = ch.employee_id and ec.client_id = ch.client_id
                    where ec.id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "checkin_without_assignment",
                "warn" if unassigned_checkins else "ok",
                {"sample_ids": [row[0] for row in unassigned_checkins]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
