"""Discord-facing pieces of RagBot: cogs and their helpers."""
