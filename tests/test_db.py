"""Tests for SQLite persistence."""

from datetime import date, datetime, timedelta

import pytest

from ip_tracker.db import Database, load_session, save_session
from ip_tracker.models import AlertSettings, Asset, Client, MonitoringAlert, MonitoringItem
from ip_tracker.store import SessionStore

NOW = datetime(2026, 3, 1, 9, 30)


@pytest.fixture
def db():
    database = Database(":memory:")
    database.init_db()
    yield database
    database.close()


def make_store(db, org_id="org-1") -> SessionStore:
    return SessionStore(org_id=org_id, settings_repository=db, clock=lambda: NOW)


def test_upsert_and_get(db):
    assert db.get("settings", "org-1") is None

    db.upsert("settings", "org-1", {"alert_days": [30]})
    db.upsert("settings", "org-1", {"alert_days": [7, 30]})

    assert db.get("settings", "org-1") == {"alert_days": [7, 30]}
    assert db.get("settings", "org-2") is None
    assert isinstance(db.get_updated_at("settings", "org-1"), datetime)


def test_delete(db):
    db.upsert("assets", "org-1", {"items": []})
    assert db.delete("assets", "org-1") is True
    assert db.delete("assets", "org-1") is False
    assert db.get_updated_at("assets", "org-1") is None


def test_list_org_ids(db):
    db.upsert("settings", "org-b", {})
    db.upsert("assets", "org-a", {"items": []})
    db.upsert("settings", "org-a", {})
    assert db.list_org_ids() == ["org-a", "org-b"]


def test_context_manager_initializes(tmp_path):
    path = tmp_path / "nested" / "tracker.db"
    with Database(str(path)) as database:
        database.upsert("settings", "default", {"alert_days": [30]})
    assert path.exists()

    with Database(str(path)) as database:
        assert database.get("settings", "default") == {"alert_days": [30]}


def test_settings_persist_across_sessions(db):
    first = make_store(db)
    first.update_settings({"alert_days": [90, 15]})

    second = make_store(db)
    assert second.settings == AlertSettings()
    second.load_settings()

    assert second.settings.alert_days == (15, 90)


def test_settings_are_scoped_by_organization(db):
    make_store(db, "org-1").update_settings({"email_notifications": False})

    other = make_store(db, "org-2")
    other.load_settings()

    assert other.settings.email_notifications is True


def test_save_and_load_session(db):
    store = make_store(db)
    store.add_client(Client(id="client-1", name="TechCorp Inc."))
    store.add_asset(Asset(
        id="asset-1", name="Innovatr", type="trademark", client_id="client-1",
        expiry_date=NOW.date() + timedelta(days=45),
    ))
    store.add_monitoring_item(MonitoringItem(
        id="mon-1", name="Innovatr Watch", type="trademark", keywords=["Innovatr"],
        alert_count=3, last_checked=NOW,
    ))
    store.add_monitoring_alerts([MonitoringAlert(
        id="alert-1", type="similar_mark", priority="high", title="Similar Trademark Found: INNOVATOR",
        monitoring_item_id="mon-1", monitoring_item_name="Innovatr Watch", created_at=NOW, detected_at=NOW,
    )])
    store.update_settings({"alert_days": [60]})

    save_session(db, store)

    restored = make_store(db)
    assert load_session(db, restored) is True

    assert restored.get_client("client-1").name == "TechCorp Inc."
    asset = restored.get_asset("asset-1")
    assert asset.expiry_date == date(2026, 4, 15)
    item = restored.get_monitoring_item("mon-1")
    assert item.alert_count == 3
    assert item.last_checked == NOW
    assert restored.list_monitoring_alerts("mon-1")[0].monitoring_item_name == "Innovatr Watch"
    assert restored.settings.alert_days == (60,)
    # Derived alerts are recomputed from the restored data
    assert [a.id for a in restored.alerts] == ["asset-1-60"]


def test_load_session_without_data(db):
    store = make_store(db)
    assert load_session(db, store) is False
    assert store.list_assets() == []
