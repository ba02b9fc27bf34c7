"""
Problem report exporter.

Writes the current ranked problem set to CSV plus a metadata JSON file.
"""

import json
import logging
import os
from typing import Dict, List, Optional

import pandas as pd

from civiclens.agents.explainability import priority_label
from civiclens.models.audit import AnalysisRun
from civiclens.storage.repository import PipelineRepository
from civiclens.utils.timestamps import to_iso, utc_now

logger = logging.getLogger(__name__)

COLUMNS = [
    "Rank", "Problem", "Priority", "Label", "Trend", "Complaints",
    "Locations", "Top Location", "Keywords", "Description", "Problem ID",
]


class ProblemReportExporter:
    """
    Builds a ranked problem table from persisted state.
    """

    def __init__(self, repository: PipelineRepository):
        """
        Initialize report exporter.

        Args:
            repository: Repository holding the current problem set
        """
        self.repository = repository

    def build_table(self) -> pd.DataFrame:
        """One row per problem, highest priority first."""
        rows: List[Dict] = []

        for rank, problem in enumerate(self.repository.list_problems(), 1):
            complaints = self.repository.complaints_for_problem(problem.id)
            locations = pd.Series([c.location for c in complaints if c.location], dtype="object")

            rows.append({
                "Rank": rank,
                "Problem": problem.title,
                "Priority": problem.priority_score,
                "Label": priority_label(problem.priority_score),
                "Trend": problem.trend,
                "Complaints": problem.complaint_count,
                "Locations": int(locations.nunique()),
                "Top Location": locations.value_counts().index[0] if not locations.empty else "",
                "Keywords": ", ".join(problem.keywords),
                "Description": problem.description,
                "Problem ID": problem.id,
            })

        if not rows:
            logger.warning("No problems found, creating empty report table")
            return pd.DataFrame(columns=COLUMNS)

        return pd.DataFrame(rows, columns=COLUMNS)

    def export(self, output_dir: str, run: Optional[AnalysisRun] = None) -> str:
        """
        Save the problem table as CSV with a metadata JSON alongside.

        Args:
            output_dir: Directory to write into
            run: Analysis run the table reflects, if known

        Returns:
            Path to the generated CSV file
        """
        df = self.build_table()
        generated_at = utc_now()
        stamp = generated_at.strftime("%Y%m%dT%H%M%SZ")

        os.makedirs(output_dir, exist_ok=True)
        output_path = os.path.join(output_dir, f"problems_{stamp}.csv")
        df.to_csv(output_path, index=False)

        logger.info(f"Problem report saved to {output_path} ({len(df)} problems)")

        label_counts = df["Label"].value_counts().to_dict() if not df.empty else {}
        metadata = {
            "generated_at": to_iso(generated_at),
            "total_problems": len(df),
            "total_complaints": int(df["Complaints"].sum()) if not df.empty else 0,
            "priority_labels": {str(k): int(v) for k, v in label_counts.items()},
            "analysis_run": run.to_dict() if run else None,
        }

        metadata_path = output_path.replace(".csv", "_metadata.json")
        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2)

        logger.info(f"Metadata saved to {metadata_path}")
        return output_path
