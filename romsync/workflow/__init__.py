"""Download, catalog sync and reconciliation workflows."""
