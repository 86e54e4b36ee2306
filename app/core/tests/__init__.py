"""Tests for shared core infrastructure."""
