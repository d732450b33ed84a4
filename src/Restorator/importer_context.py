"""Run-level aggregation of per-entry import outcomes.

``ImportRunContext`` is what ``run_import`` hands back: every recognized
entry's outcome in archive order plus the skipped paths, so callers and tests
can inspect failures without scraping logs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from Restorator.commands import Ok, SubmissionFailure, SubmissionOutcome
from Restorator.manifest import ImportMetadata


class EntryCategory(str, Enum):
    CATALOG = "catalog"
    REPORT = "report"
    FACTS = "facts"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class EntryOutcome:
    path: str
    category: EntryCategory
    outcome: SubmissionOutcome | None = None

    @property
    def skipped(self) -> bool:
        return self.outcome is None

    @property
    def failed(self) -> bool:
        return isinstance(self.outcome, SubmissionFailure)


@dataclass
class ImportRunContext:
    """Collects outcomes for a single import run."""

    archive_path: str
    host: str
    port: int
    metadata: ImportMetadata | None = None
    outcomes: list[EntryOutcome] = field(default_factory=list)

    def record(self, outcome: EntryOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def submitted(self) -> list[EntryOutcome]:
        return [o for o in self.outcomes if isinstance(o.outcome, Ok)]

    @property
    def failures(self) -> list[EntryOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def skipped(self) -> list[EntryOutcome]:
        return [o for o in self.outcomes if o.skipped]

    def summary_counts(self) -> dict[str, int]:
        """Return counts of submitted, failed and skipped entries."""

        return {
            "submitted": len(self.submitted),
            "failed": len(self.failures),
            "skipped": len(self.skipped),
        }
