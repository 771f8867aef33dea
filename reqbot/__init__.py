"""
Top-level package for the item-request Discord bot.

This package hosts:
- config loading and validation
- the request store and the queue monitor (rendering + publishing)
- the interactive selection flows behind /request-items and friends
- LLM question answering over uploaded project documents
"""
