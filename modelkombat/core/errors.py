"""
Error taxonomy shared by the configuration core and its integrations.
"""


class ModelKombatError(Exception):
    """Base exception for all Model Kombat errors."""
    pass


class CredentialError(ModelKombatError):
    """Raised when a credential is missing, undecodable or rejected by OpenRouter."""
    pass


class NetworkError(ModelKombatError):
    """Raised when OpenRouter cannot be reached or the request times out."""
    pass


class RateLimitError(NetworkError):
    """Raised when OpenRouter answers 429."""
    pass


class ModelNotFoundError(NetworkError):
    """Raised when the requested model is not offered by OpenRouter."""
    pass


class ValidationError(ModelKombatError):
    """Raised when a mutation is rejected before any state changes."""
    pass


class PersistenceError(ModelKombatError):
    """Raised when writing the configuration to its storage backend fails."""
    pass
