"""Model-facing pieces of a chat turn."""
