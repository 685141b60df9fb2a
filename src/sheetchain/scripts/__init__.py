"""Operational scripts: schema migrations and tabular store bootstrap."""
