"""
solvebot — CTF Solve Approval & Rank Progression for Discord
=============================================================
Tracks challenge solves submitted by team members, routes each one through
an officer-moderated approval gate, and on approval credits points to every
listed solver and re-evaluates their rank on a ladder anchored to the
current leader.

Package layout::

    solvebot/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Presentation helpers (points display, colours)
    ├── errors.py          # Error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (competitions, challenges, solves, users)
    ├── engine/
    │   └── ranks.py       # Pure cutoff ladder + rank transition logic
    ├── services/
    │   ├── solve_store.py         # Challenge/solve persistence
    │   ├── points_ledger.py       # Atomic point balance mutation
    │   ├── progression_service.py # Rank re-evaluation + role side effects
    │   ├── approval_service.py    # Pending → Approved/Declined state machine
    │   ├── side_effects.py        # RoleSync/NotificationSink + bounded retry
    │   ├── stats_service.py       # Leaderboard / stats / ladder read models
    │   └── log_channel.py         # Mirrors warnings to the bot-log channel
    ├── bot/
    │   ├── __main__.py    # python -m solvebot.bot
    │   ├── core.py        # Bot subclass, cog loader
    │   ├── checks.py      # Officer role check
    │   ├── views.py       # Persistent Approve / Decline buttons
    │   ├── discord_sinks.py  # discord.py implementations of the side-effect protocols
    │   ├── embeds.py      # Embed builders
    │   └── cogs/          # /solve, /leaderboard, /award, message points
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Public read-only endpoints
"""

__version__ = "0.1.0"
