from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

import pandas as pd


@dataclass(frozen=True)
class RowIssue:
    row: int
    column_name: str
    issue_type: str
    details: str


@dataclass
class LoadStats:
    rows_read: int = 0
    rows_loaded: int = 0
    blank_rows: int = 0
    skipped: Counter = field(default_factory=Counter)
    issues: List[RowIssue] = field(default_factory=list)

    def record_skip(self, issue: RowIssue) -> None:
        self.skipped[issue.issue_type] += 1
        self.issues.append(issue)

    @property
    def rows_skipped(self) -> int:
        return sum(self.skipped.values())

    def summary(self) -> Dict[str, int]:
        out = {"rows_read": self.rows_read, "rows_loaded": self.rows_loaded, "blank_rows": self.blank_rows}
        out.update({f"skipped_{reason}": count for reason, count in sorted(self.skipped.items())})
        return out


def issues_to_dataframe(issues: List[RowIssue]) -> pd.DataFrame:
    if not issues:
        return pd.DataFrame(columns=["row", "column_name", "issue_type", "details"])
    return pd.DataFrame([i.__dict__ for i in issues])


def skip_counts_frame(stats: LoadStats) -> pd.DataFrame:
    """One row per skip reason, most frequent first."""
    if not stats.skipped:
        return pd.DataFrame(columns=["issue_type", "rows"])
    frame = pd.DataFrame(sorted(stats.skipped.items()), columns=["issue_type", "rows"])
    return frame.sort_values(["rows", "issue_type"], ascending=[False, True]).reset_index(drop=True)
