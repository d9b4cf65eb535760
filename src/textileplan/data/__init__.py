"""SQLite record store and spreadsheet import."""
