"""
Tests for authentication app.

This package contains test modules for:
- test_models.py: User manager, roles and saved addresses
- test_views.py: Current user, JWT login and address endpoints

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_models.py
"""
