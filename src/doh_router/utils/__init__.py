"""Shared utilities for doh-router."""
