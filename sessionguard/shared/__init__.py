"""Shared models and utilities used across SessionGuard services."""
