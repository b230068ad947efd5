"""Data models and enums."""
