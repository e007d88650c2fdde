"""
Discord cogs for plugcord.

- **events_listener.py**: Activates guild plugins when the bot becomes ready
  or joins a guild, and deactivates them when it leaves.
"""
