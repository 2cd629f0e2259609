"""Load the Odoo Excel exports kept on SharePoint into the reporting tables.

Per file: download through Microsoft Graph, parse the first worksheet, replace
the table contents in batches and record the run in ``sync_logs``.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import requests
from sqlalchemy import update
from sqlalchemy.engine import Engine

from branchops.core.db.base import utc_now
from branchops.core.db.session import get_engine, init_db
from branchops.core.observability.metrics import SYNC_ROWS_TOTAL
from branchops.core.reporting.tables import DATE, NUM, REPORT_FILES, TABLES, ReportFile, sync_logs
from branchops.core.tabular import leading_float, parse_excel_date, read_first_sheet, safe_str

log = logging.getLogger("branchops.sync")

TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DOWNLOAD_URL = "https://graph.microsoft.com/v1.0/drives/{drive}/items/{item}/content"
BATCH_SIZE = 1000
HTTP_TIMEOUT_SECONDS = 120

DEFAULT_FILES = tuple(REPORT_FILES)


class SyncError(Exception):
    pass


@dataclass(frozen=True)
class SharePointConfig:
    tenant_id: str
    client_id: str
    client_secret: str
    drive_id: str

    @classmethod
    def from_env(cls) -> "SharePointConfig":
        values = {
            "SHAREPOINT_TENANT_ID": os.getenv("SHAREPOINT_TENANT_ID", "").strip(),
            "SHAREPOINT_CLIENT_ID": os.getenv("SHAREPOINT_CLIENT_ID", "").strip(),
            "SHAREPOINT_CLIENT_SECRET": os.getenv("SHAREPOINT_CLIENT_SECRET", "").strip(),
            "SHAREPOINT_DRIVE_ID": os.getenv("SHAREPOINT_DRIVE_ID", "").strip(),
        }
        missing = [k for k, v in values.items() if not v]
        if missing:
            raise SyncError(f"Missing required environment variables: {', '.join(missing)}")
        return cls(
            tenant_id=values["SHAREPOINT_TENANT_ID"],
            client_id=values["SHAREPOINT_CLIENT_ID"],
            client_secret=values["SHAREPOINT_CLIENT_SECRET"],
            drive_id=values["SHAREPOINT_DRIVE_ID"],
        )


def files_to_sync(raw: Optional[str] = None) -> List[str]:
    raw = raw if raw is not None else os.getenv("SYNC_FILES")
    if not raw:
        return list(DEFAULT_FILES)
    return [s.strip() for s in raw.split(",") if s.strip()]


class GraphClient:
    """Client-credentials token plus drive item download."""

    def __init__(self, config: SharePointConfig, *, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()
        self._token: Optional[str] = None

    def token(self) -> str:
        if self._token:
            return self._token
        resp = self.session.post(
            TOKEN_URL.format(tenant=self.config.tenant_id),
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            },
            timeout=HTTP_TIMEOUT_SECONDS,
        )
        if resp.status_code >= 400:
            raise SyncError(f"Authentication failed: {resp.status_code}")
        self._token = resp.json().get("access_token")
        if not self._token:
            raise SyncError("Authentication failed: no access token in response")
        return self._token

    def download(self, item_id: str) -> bytes:
        resp = self.session.get(
            DOWNLOAD_URL.format(drive=self.config.drive_id, item=item_id),
            headers={"Authorization": f"Bearer {self.token()}"},
            timeout=HTTP_TIMEOUT_SECONDS,
        )
        if resp.status_code >= 400:
            raise SyncError(f"Download failed: {resp.status_code}")
        return resp.content


def transform_row(spec: ReportFile, row: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for field in spec.fields:
        value = row.get(field.header)
        if field.kind == NUM:
            out[field.column] = leading_float(value) or 0.0
        elif field.kind == DATE:
            parsed = parse_excel_date(value)
            out[field.column] = parsed.date() if parsed is not None else None
        else:
            out[field.column] = safe_str(value) or None
    return out


def _batches(rows: Sequence[Dict[str, Any]], size: int) -> Iterable[Sequence[Dict[str, Any]]]:
    for i in range(0, len(rows), size):
        yield rows[i: i + size]


def load_rows(engine: Engine, spec: ReportFile, rows: Sequence[Mapping[str, Any]]) -> int:
    """Replace the table contents with ``rows``; returns the number inserted."""
    table = TABLES[spec.kind]
    transformed = [transform_row(spec, r) for r in rows]
    synced_at = utc_now()
    for r in transformed:
        r["synced_at"] = synced_at

    processed = 0
    with engine.begin() as conn:
        conn.execute(table.delete())
        for batch in _batches(transformed, BATCH_SIZE):
            conn.execute(table.insert(), list(batch))
            processed += len(batch)
            log.debug("sync progress kind=%s processed=%d total=%d", spec.kind, processed, len(transformed))
    return processed


def _start_log(engine: Engine, file_name: str) -> int:
    with engine.begin() as conn:
        result = conn.execute(
            sync_logs.insert().values(file_name=file_name, started_at=utc_now(), status="running", rows_processed=0)
        )
        return int(result.inserted_primary_key[0])


def _finish_log(engine: Engine, log_id: int, **values: Any) -> None:
    with engine.begin() as conn:
        conn.execute(update(sync_logs).where(sync_logs.c.id == log_id).values(completed_at=utc_now(), **values))


def sync_file(engine: Engine, client: GraphClient, kind: str) -> Dict[str, Any]:
    spec = REPORT_FILES.get(kind)
    if spec is None:
        log.warning("sync unknown file type kind=%s", kind)
        return {"file": kind, "status": "skipped", "reason": "Unknown file type"}
    item_id = os.getenv(spec.file_id_env, "").strip()
    if not item_id:
        log.info("sync skipped kind=%s reason=%s not set", kind, spec.file_id_env)
        return {"file": kind, "status": "skipped", "reason": "No file ID"}

    started = time.monotonic()
    log_id: Optional[int] = None
    try:
        content = client.download(item_id)
        _, rows = read_first_sheet(content)
        log.info("sync parsed kind=%s rows=%d bytes=%d", kind, len(rows), len(content))
        log_id = _start_log(engine, spec.file_name)
        processed = load_rows(engine, spec, rows)
        _finish_log(engine, log_id, status="success", rows_processed=processed)
    except Exception as exc:
        # one file failing must not stop the others
        if log_id is not None:
            _finish_log(engine, log_id, status="failed", error_message=str(exc))
        log.warning("sync failed kind=%s err=%s", kind, exc)
        return {"file": kind, "status": "failed", "error": str(exc)}

    duration = round(time.monotonic() - started, 1)
    SYNC_ROWS_TOTAL.labels(kind=kind, status="success").inc(processed)
    log.info("sync done kind=%s rows=%d seconds=%.1f", kind, processed, duration)
    return {"file": kind, "status": "success", "rows": processed, "duration": duration}


def run_sync(
    kinds: Optional[Sequence[str]] = None,
    *,
    client: Optional[GraphClient] = None,
    engine: Optional[Engine] = None,
) -> Dict[str, Any]:
    """Sync each requested file and return per-file results plus a summary."""
    started = time.monotonic()
    if engine is None:
        init_db()
        engine = get_engine()
    client = client or GraphClient(SharePointConfig.from_env())
    kinds = list(kinds) if kinds else files_to_sync()

    results = [sync_file(engine, client, kind) for kind in kinds]
    ok = [r for r in results if r["status"] == "success"]
    failed = [r for r in results if r["status"] == "failed"]
    return {
        "results": results,
        "summary": {
            "duration": round(time.monotonic() - started, 1),
            "successful": len(ok),
            "failed": len(failed),
            "skipped": sum(1 for r in results if r["status"] == "skipped"),
            "totalRows": sum(r.get("rows", 0) for r in ok),
            "failedFiles": [r["file"] for r in failed],
        },
    }
