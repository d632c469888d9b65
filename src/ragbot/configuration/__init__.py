"""
Configuration management for RagBot.

- **app_configuration.py**: YAML configuration loader for global settings
  (bot presence, API cache sizing and TTLs). Falls back to defaults on
  missing or malformed config files.
"""
