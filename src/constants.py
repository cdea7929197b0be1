"""Project-wide constants shared by models, migrations and tests."""

DB_SCHEMA = "anipilot"
