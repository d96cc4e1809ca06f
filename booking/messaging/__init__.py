"""Event channel over Redis Streams."""
