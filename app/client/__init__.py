"""Async client side: HTTP API wrapper, live list view and terminal shell."""
