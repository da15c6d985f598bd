"""
ScrapeGuard Score Reporter

Best-effort reporting channel that inserts score reports into the
Supabase `bot_reports` table for server-side correlation.

Schema:
    bot_reports (
        report_id     TEXT PRIMARY KEY,
        identifier    TEXT,
        current_score DOUBLE PRECISION,
        reasons       JSONB,
        reported_at   TIMESTAMPTZ DEFAULT now()
    )
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import create_client, Client

from core.schemas.outputs import ScoreReport


logger = logging.getLogger(__name__)


class ScoreReporter:
    """
    Inserts ScoreReports into Supabase.

    Delivery failures are logged and swallowed; reporting never blocks or
    breaks the detection pipeline.
    """

    TABLE = "bot_reports"

    def __init__(self, client: Optional[Client] = None) -> None:
        if client is not None:
            self._client: Optional[Client] = client
            return

        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url or not key:
            logger.warning("Supabase credentials missing; score reporting disabled")
            self._client = None
            return
        self._client = create_client(url, key)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def report(self, report: ScoreReport) -> None:
        """Insert one report row. Never raises."""
        if self._client is None:
            return

        try:
            row = self._build_row(report)
            self._client.table(self.TABLE).insert(row).execute()
            logger.debug(f"Score report inserted: {row['report_id']}")
        except Exception as e:
            logger.error(f"Score report delivery failed for {report.identifier}: {e}")

    def _build_row(self, report: ScoreReport) -> Dict[str, Any]:
        return {
            "report_id": str(uuid.uuid4()),
            "identifier": report.identifier,
            "current_score": report.current_score,
            "reasons": list(report.reasons),
            "reported_at": datetime.now(timezone.utc).isoformat(),
        }
