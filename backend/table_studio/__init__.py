"""Schema-driven record and table editing engine."""
