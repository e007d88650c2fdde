"""
Utility helpers for plugcord.

- **logger.py**: Centralized logging configuration with colored console output
  through prompt_toolkit, per-session log files and suppression of noisy
  library loggers.
"""
