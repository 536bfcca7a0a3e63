"""Exception hierarchy for robosync."""


class RoboSyncError(Exception):
    """Base exception for robosync."""


class CredentialError(RoboSyncError):
    """No usable RobotEvents API key."""


class AuthExhausted(CredentialError):
    """Every configured key has been blacklisted after a 401."""


class RateLimitExhausted(RoboSyncError):
    """All keys stayed on cooldown past the wait budget."""


# Errors that abort the whole run instead of a single event
FATAL_ERRORS = (CredentialError, RateLimitExhausted)
