"""Operational scripts: boss registration, store migration, schema init."""
