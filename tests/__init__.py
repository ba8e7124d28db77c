"""Tests for local-coder."""
