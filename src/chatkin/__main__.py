"""Chatkin CLI bootstrap."""

from __future__ import annotations

from chatkin.cli import app

if __name__ == "__main__":
    app()
