"""Core utilities shared by every pipeline stage."""
