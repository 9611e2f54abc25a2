"""Bones day dashboard: live classification of the daily reading."""
