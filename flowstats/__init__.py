"""flowstats: streaming per-pair network flow statistics (summarize -> consolidate -> export)."""

__version__ = "0.1.0"
