"""Pipeline stages and read-side services."""
