"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured logging with dispatch context
    errors          — exception hierarchy & FastAPI handlers
    naming          — dotted-name class lookup (constant resolution)
    callbacks       — ordered before/after/around hook chains
    actions         — shared machinery for action handlers
"""
