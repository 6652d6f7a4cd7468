from __future__ import annotations

import json
import pathlib

import asyncpg
import pytest

from modengine.domain.errors import StoreUnavailable
from modengine.domain.models import (
    ContentActionDetails,
    RestrictionDetails,
    RestrictionKind,
    SuspensionDetails,
    TargetKind,
    WarningDetails,
)
from modengine.infra.postgres_repo import _store_errors, details_from_json, details_to_json
from modengine.migrate import MIGRATIONS_DIR, pending_migrations


@pytest.mark.parametrize(
    "details",
    [
        ContentActionDetails(target_kind=TargetKind.TRACK, target_id="track-1"),
        WarningDetails(notification_message="be kind"),
        SuspensionDetails(duration_days=None, permanent=True),
        RestrictionDetails(restriction_kind=RestrictionKind.UPLOAD_DISABLED, duration_days=7),
    ],
)
def test_metadata_variants_are_tagged(details) -> None:
    raw = details_to_json(details)
    assert "variant" in json.loads(raw)
    assert details_from_json(raw) == details


def test_metadata_accepts_decoded_jsonb() -> None:
    assert details_from_json({"variant": "warning"}) == WarningDetails()


def test_unknown_metadata_variant_is_rejected() -> None:
    with pytest.raises(ValueError):
        details_from_json('{"variant": "mystery"}')


def test_transient_store_errors_become_store_unavailable() -> None:
    with pytest.raises(StoreUnavailable) as excinfo:
        with _store_errors():
            raise asyncpg.InterfaceError("connection is closed")
    assert excinfo.value.retryable


def test_pending_migrations_skip_applied_versions(tmp_path: pathlib.Path) -> None:
    for name in ("0002_more.sql", "0001_init.sql", "0003_last.sql"):
        (tmp_path / name).write_text("SELECT 1;")

    pending = pending_migrations(list(tmp_path.glob("*.sql")), {"0002"})

    assert [path.name for path in pending] == ["0001_init.sql", "0003_last.sql"]


def test_schema_migration_ships_with_the_package() -> None:
    sql = (MIGRATIONS_DIR / "0001_moderation_engine.sql").read_text()
    assert "CREATE TABLE IF NOT EXISTS moderation_actions" in sql
    assert "user_restrictions_one_active_idx" in sql
