"""Data models for poker-sync."""
