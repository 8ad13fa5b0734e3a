"""Tests for core infrastructure (service results, errors, health check)."""
