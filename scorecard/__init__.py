"""Spreadsheet-backed sales ledger, aggregates and live reload."""
