class GatewayError(Exception):
    """Base class for failures of a remote Drive operation."""


class AuthenticationError(GatewayError):
    """Raised when OAuth credentials are missing or invalid."""


class IntegrationError(GatewayError):
    """Raised when a Drive API call fails."""


class RateLimitError(GatewayError):
    """Raised when the Drive API rate limit is hit."""


class CredentialError(Exception):
    """Raised when the credential file exists but cannot be used."""
