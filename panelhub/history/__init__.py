"""Append-only execution history and run summaries."""

from .recorder import HistoryRecorder
from .summary import RunResult, RunSummary, summarize_runs

__all__ = ["HistoryRecorder", "RunResult", "RunSummary", "summarize_runs"]
