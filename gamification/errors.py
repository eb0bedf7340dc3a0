"""
Engine error taxonomy.

Unique-key conflicts on grants and idempotency keys are not errors: the
services report them as "already done" values instead of raising.
"""


class GamificationError(Exception):
    """Base class for engine errors"""
    kind = "GAMIFICATION_ERROR"


class ValidationError(GamificationError, ValueError):
    """Malformed input, rejected before any write"""
    kind = "VALIDATION_ERROR"


class PersistenceError(GamificationError):
    """The store failed (unavailable, or a constraint other than the expected unique key)"""
    kind = "PERSISTENCE_ERROR"
