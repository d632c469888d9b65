"""
RagBot - Ragnarok Online lookup bot for Discord

RagBot answers slash commands by querying third-party Ragnarok Online data
sources (item/monster/map database, wiki search, official market API) and
formatting the results as Discord embeds.

Core Components:

- **API Cache**: In-memory cache in front of every external lookup, with
  per-category TTLs, LRU eviction, a periodic expiry sweep and stale
  fallback when an upstream call fails
- **Cache Administration**: ``/cache`` slash commands for administrators to
  inspect statistics, invalidate entries and reset counters
- **Runtime**: Bot bootstrap and graceful shutdown

Usage:
    from ragbot.main import main
    main()
"""
