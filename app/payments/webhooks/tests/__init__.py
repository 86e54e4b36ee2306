"""Tests for the Stripe webhook endpoint, handlers and processing tasks."""
