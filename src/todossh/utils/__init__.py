"""Shared utilities for todossh."""
