"""Command-line helpers for seeding and tuning."""
