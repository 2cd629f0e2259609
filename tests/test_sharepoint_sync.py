import importlib.util
import json
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import select

from branchops.core.db.session import get_engine
from branchops.core.reporting.tables import REPORT_FILES, odoo_sales, sync_logs
from branchops.core.sync.sharepoint import (
    GraphClient,
    SharePointConfig,
    SyncError,
    files_to_sync,
    run_sync,
    transform_row,
)

CONFIG = SharePointConfig(tenant_id="tenant", client_id="client", client_secret="secret", drive_id="drive")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b""):
        self.status_code = status_code
        self._payload = payload or {}
        self.content = content

    def json(self):
        return self._payload


class FakeSession:
    """Serves a token and drive items keyed by item id."""

    def __init__(self, items=None, token_status=200):
        self.items = items or {}
        self.token_status = token_status
        self.posts = []
        self.gets = []

    def post(self, url, data=None, timeout=None):
        self.posts.append(url)
        return FakeResponse(self.token_status, {"access_token": "tok"})

    def get(self, url, headers=None, timeout=None):
        self.gets.append((url, headers))
        item = url.rsplit("/items/", 1)[1].split("/", 1)[0]
        if item not in self.items:
            return FakeResponse(404)
        return FakeResponse(200, content=self.items[item])


def test_config_from_env(monkeypatch):
    for name in ("SHAREPOINT_TENANT_ID", "SHAREPOINT_CLIENT_ID", "SHAREPOINT_CLIENT_SECRET", "SHAREPOINT_DRIVE_ID"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SHAREPOINT_TENANT_ID", "t")
    monkeypatch.setenv("SHAREPOINT_CLIENT_ID", "c")
    with pytest.raises(SyncError) as exc:
        SharePointConfig.from_env()
    assert str(exc.value) == (
        "Missing required environment variables: SHAREPOINT_CLIENT_SECRET, SHAREPOINT_DRIVE_ID"
    )

    monkeypatch.setenv("SHAREPOINT_CLIENT_SECRET", "s")
    monkeypatch.setenv("SHAREPOINT_DRIVE_ID", "d")
    assert SharePointConfig.from_env().drive_id == "d"


def test_files_to_sync(monkeypatch):
    assert files_to_sync("sales, waste ,") == ["sales", "waste"]
    assert files_to_sync() == list(REPORT_FILES)
    monkeypatch.setenv("SYNC_FILES", "inventory")
    assert files_to_sync() == ["inventory"]


def test_transform_row():
    row = {"Branch": " ISC DIP ", "Date": "2025-11-03", "Items": "", "Qty": "3 pcs", "Order Number": 1042}
    out = transform_row(REPORT_FILES["sales"], row)
    assert out["branch"] == "ISC DIP"
    assert out["date"] == date(2025, 11, 3)
    assert out["items"] is None
    assert out["qty"] == 3.0
    assert out["unit_price"] == 0.0
    assert out["order_number"] == "1042"
    assert set(out) == set(REPORT_FILES["sales"].columns)


def test_graph_client_caches_token_and_reports_errors():
    session = FakeSession(items={"a": b"one", "b": b"two"})
    client = GraphClient(CONFIG, session=session)
    assert client.download("a") == b"one"
    assert client.download("b") == b"two"
    assert len(session.posts) == 1
    assert session.posts[0] == "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    assert session.gets[0][0] == "https://graph.microsoft.com/v1.0/drives/drive/items/a/content"
    assert session.gets[0][1] == {"Authorization": "Bearer tok"}

    with pytest.raises(SyncError, match="Download failed: 404"):
        client.download("missing")
    with pytest.raises(SyncError, match="Authentication failed: 401"):
        GraphClient(CONFIG, session=FakeSession(token_status=401)).token()


def test_run_sync_replaces_tables_and_logs(db, monkeypatch, make_xlsx):
    db.execute(odoo_sales.insert(), [{"order_number": "OLD", "branch": "ISC DIP"}])
    db.commit()

    workbook = make_xlsx(
        ["Order Number", "Branch", "Date", "Items", "Qty", "Price subtotal with tax", "Category"],
        [
            ["S1", "ISC DIP", "2025-11-03", "Chicken Biryani", 3, 90, "Main"],
            ["S2", "ISC RAK", "2025-11-04", "Orange Juice", "2", "15.5", "Drinks"],
        ],
    )
    monkeypatch.setenv("SHAREPOINT_SALES_FILE_ID", "item-sales")
    monkeypatch.setenv("SHAREPOINT_WASTE_FILE_ID", "item-waste")
    monkeypatch.delenv("SHAREPOINT_INVENTORY_FILE_ID", raising=False)
    session = FakeSession(items={"item-sales": workbook, "item-waste": b"not a workbook"})

    report = run_sync(
        ["sales", "waste", "inventory", "bogus"],
        client=GraphClient(CONFIG, session=session),
        engine=get_engine(),
    )

    by_file = {r["file"]: r for r in report["results"]}
    assert by_file["sales"]["status"] == "success"
    assert by_file["sales"]["rows"] == 2
    assert by_file["waste"]["status"] == "failed"
    assert by_file["inventory"] == {"file": "inventory", "status": "skipped", "reason": "No file ID"}
    assert by_file["bogus"] == {"file": "bogus", "status": "skipped", "reason": "Unknown file type"}

    summary = report["summary"]
    assert (summary["successful"], summary["failed"], summary["skipped"]) == (1, 1, 2)
    assert summary["totalRows"] == 2
    assert summary["failedFiles"] == ["waste"]

    stored = db.execute(select(odoo_sales).order_by(odoo_sales.c.order_number)).all()
    assert [(r.order_number, r.branch, r.qty, r.price_subtotal_with_tax) for r in stored] == [
        ("S1", "ISC DIP", 3.0, 90.0),
        ("S2", "ISC RAK", 2.0, 15.5),
    ]
    assert stored[0].date == date(2025, 11, 3)
    assert all(r.synced_at is not None for r in stored)

    logs = db.execute(select(sync_logs)).all()
    assert [(r.file_name, r.status, r.rows_processed) for r in logs] == [("sales.xlsx", "success", 2)]
    assert logs[0].completed_at is not None


def _load_tool():
    path = Path(__file__).resolve().parents[1] / "tools" / "sync_sharepoint.py"
    spec = importlib.util.spec_from_file_location("sync_sharepoint_tool", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_sync_tool_exit_codes(monkeypatch, capsys):
    tool = _load_tool()
    report = {
        "results": [{"file": "sales", "status": "success", "rows": 5, "duration": 0.2}],
        "summary": {
            "duration": 0.3,
            "successful": 1,
            "failed": 0,
            "skipped": 0,
            "totalRows": 5,
            "failedFiles": [],
        },
    }
    seen = {}

    def fake_run_sync(kinds):
        seen["kinds"] = kinds
        return report

    monkeypatch.setattr(tool, "run_sync", fake_run_sync)
    assert tool.main(["sales", "--json"]) == 0
    assert seen["kinds"] == ["sales"]
    assert json.loads(capsys.readouterr().out)["summary"]["totalRows"] == 5

    assert tool.main([]) == 0
    assert seen["kinds"] is None
    assert "Total rows: 5" in capsys.readouterr().out

    def aborted(kinds):
        raise SyncError("Missing required environment variables: SHAREPOINT_TENANT_ID")

    monkeypatch.setattr(tool, "run_sync", aborted)
    assert tool.main([]) == 1
    assert "sync aborted" in capsys.readouterr().err
