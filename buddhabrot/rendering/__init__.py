"""Tone mapping and image/raw histogram output."""
