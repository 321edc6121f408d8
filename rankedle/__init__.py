"""
Rankedle — Daily "Guess the Song" Game for a Beat Saber Discord Community
==========================================================================
Every day one ranked map is picked, its audio is cut into six clips of
growing length, and members get seven steps to name the song.  Wins earn
season points; the results channel opens to everyone who has finished.

Package layout::

    rankedle/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Scoring table, clip lengths, glyphs
    ├── errors.py          # Error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (7 tables)
    │   └── seed.py        # First season seeder
    ├── engine/
    │   ├── scoring.py     # Points, glyph rows, dense ranking
    │   └── waveform.py    # Waveform PNG renderer
    ├── services/
    │   ├── rankedle_service.py    # Facade used by the API and the bot
    │   ├── attempt_service.py     # play / skip / submit / hint
    │   ├── puzzle_service.py      # Lookups, history, search, finish
    │   ├── generation_service.py  # Daily asset pipeline
    │   ├── stats_service.py       # Season stats, ranking, summary
    │   ├── guild_service.py       # Discord membership + results channel
    │   ├── media_service.py       # httpx / zip / ffmpeg / Pillow wrappers
    │   ├── message_service.py     # Completion flavor messages
    │   └── map_service.py         # Catalog mirror import / exclusions
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/
    │       ├── tasks.py   # Midnight generation loop
    │       └── meta.py    # /rankedle-ranking, /rankedle-stats
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + injected service
        └── routes/        # Player + admin REST endpoints
"""

__version__ = "0.1.0"
