"""Declarative query fixture runner for MySQL-wire servers."""

__version__ = "0.3.0"
