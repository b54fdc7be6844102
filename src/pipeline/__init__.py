"""Scheduled jobs run outside the request path."""
