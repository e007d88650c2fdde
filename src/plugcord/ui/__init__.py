"""
Discord presentation helpers for plugcord.

- **log_embed.py**: Turns log entries emitted by the logs plugin (a log type
  plus a flat mapping of fields) into embeds posted to log channels.
"""
