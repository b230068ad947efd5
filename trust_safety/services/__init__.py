"""Enforcement services and the SafetyEngine facade."""
