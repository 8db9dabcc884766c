#!/usr/bin/env python
"""Offline release checks: migration chain shape and JWT signing secret.

Prints a JSON report and exits 1 when any check fails. Needs no database;
`scripts/db_health_check.py` covers the live schema.
"""
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from alembic.config import Config
from alembic.script import ScriptDirectory

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fieldtrack.settings import Settings, get_settings

# alembic_version.version_num is VARCHAR(32).
MAX_REVISION_ID_LENGTH = 32
MIN_JWT_SECRET_LENGTH = 32


def _result(name: str, status: str, **details: Any) -> dict[str, Any]:
    return {"name": name, "status": status, "details": details}


def check_migration_chain(script: ScriptDirectory) -> dict[str, Any]:
    revisions = [item.revision for item in script.walk_revisions()]
    too_long = sorted(item for item in revisions if len(item) > MAX_REVISION_ID_LENGTH)
    heads = sorted(script.get_heads())
    status = "ok" if not too_long and len(heads) == 1 else "fail"
    return _result(
        "migration_chain",
        status,
        heads=heads,
        too_long=too_long,
        max_len=MAX_REVISION_ID_LENGTH,
        total=len(revisions),
    )


def check_jwt_secret(settings: Settings) -> dict[str, Any]:
    secret_length = len((settings.jwt_secret or "").strip())
    if secret_length == 0:
        status = "fail"
    elif secret_length < MIN_JWT_SECRET_LENGTH:
        status = "warn"
    else:
        status = "ok"
    return _result(
        "jwt_secret",
        status,
        jwt_secret_set=secret_length > 0,
        min_length=MIN_JWT_SECRET_LENGTH,
    )


def build_report(script: ScriptDirectory, settings: Settings) -> dict[str, Any]:
    checks = [check_migration_chain(script), check_jwt_secret(settings)]
    return {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "ok": all(check["status"] != "fail" for check in checks),
        "checks": checks,
    }


def main() -> int:
    script = ScriptDirectory.from_config(Config(str(ROOT_DIR / "alembic.ini")))
    report = build_report(script, get_settings())
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
