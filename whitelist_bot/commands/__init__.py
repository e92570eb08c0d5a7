"""Slash commands exposed by the bot."""
