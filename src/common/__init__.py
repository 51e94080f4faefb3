"""Shared helpers: errors, logging, HTTP, filesystem and configuration."""
