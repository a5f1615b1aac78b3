"""
Immersion — Character Logging & Tier Roles for a Discord Study Community
=========================================================================
Tracks how many characters each member has read, ranks members on a
leaderboard, and hands out a ladder of tier roles once their cumulative
count crosses configured thresholds.  Some tiers additionally require a
passed Kotoba quiz, verified from the quiz bot's game report.

Package layout::

    immersion/
    ├── config.py          # YAML → typed Python config (ladder + quiz catalog)
    ├── constants.py       # Page sizes, quiz constants, number formatting
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # UserStatistics, LogEntry, Metadata
    ├── engine/
    │   ├── tiers.py       # Tier ladder state machine (pure)
    │   └── quiz.py        # Quiz session record + verification rules (pure)
    ├── services/
    │   ├── ledger_service.py      # Append, rank, leaderboard, history
    │   ├── activity_service.py    # Active/inactive roster reconciliation
    │   ├── badge_service.py       # Role gateway + tier reconciliation
    │   ├── quiz_service.py        # Game report → gate role pipeline
    │   ├── announcement_service.py # Level-up celebrations
    │   └── embeds.py              # Discord embed builders
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/
            ├── immersion.py   # /log, /stats, /leaderboard, /history, /roles, /quizzes
            ├── quizzes.py     # Kotoba game-report listener
            ├── membership.py  # Join/leave → active flag
            └── tasks.py       # Periodic active-status refresh
"""

__version__ = "0.1.0"
