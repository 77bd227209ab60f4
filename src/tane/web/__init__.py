"""Web garden: HTML pages and JSON API."""
