"""SQLite storage for seeds and reports."""
