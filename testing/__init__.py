"""Testing utilities for the relay server tests."""
