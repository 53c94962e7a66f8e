import csv
import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Union

from .models import IngestReport


class ReportGenerator:
    HEADERS = ["Source", "Kind", "Status", "Destination Path", "Notes"]

    def write_csv(self, reports: Iterable[IngestReport], output_csv: Union[str, Path]) -> int:
        """
        Writes one row per ingested input. Returns the number of rows written.
        """
        rows = 0
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(self.HEADERS)
            for report in reports:
                for outcome in report.outcomes:
                    writer.writerow([
                        outcome.source,
                        report.kind.value,
                        outcome.status.value,
                        str(outcome.destination) if outcome.destination else "",
                        outcome.error or "",
                    ])
                    rows += 1

        logging.info(f"Report written: {output_csv} ({rows} rows)")
        return rows

    def summarize(self, report: IngestReport) -> str:
        counts = Counter(o.status.value for o in report.outcomes)
        parts = [f"{status}={count}" for status, count in sorted(counts.items())]
        return f"{report.kind.value}: " + (", ".join(parts) if parts else "nothing to import")
