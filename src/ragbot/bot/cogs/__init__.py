"""
Slash command and event cogs.

- **cache_cmds.py**: ``/cache`` administration commands (stats, clear, reset_stats).
- **events_listener.py**: ``on_ready`` startup hooks and command error handling.
"""
