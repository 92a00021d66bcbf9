"""Shared utilities: exceptions, logging, events and task tracking."""
