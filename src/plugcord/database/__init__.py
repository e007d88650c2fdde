"""
Case store package for plugcord.

Provides the shared aiosqlite connection, schema creation and per-guild
moderation case queries.
"""
