"""
Custom Exceptions for the QuickBooks token keeper

Define custom exception classes for more precise error handling
and consistent logging across the refresher and HTTP layer.

None of these exceptions ever carry token values in their messages.
"""


class QboBridgeError(Exception):
    """Base exception for all qbo_bridge errors"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class TokenRefreshError(QboBridgeError):
    """Base class for errors raised while refreshing a single token record"""
    pass


class AuthServerRejectedError(TokenRefreshError):
    """Raised when the Intuit token endpoint answers with a non-2xx status"""
    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        message = f"Intuit token endpoint rejected request with HTTP {status_code}"
        if body:
            message = f"{message}: {body[:500]}"
        super().__init__(message, "AUTH_SERVER_REJECTED")


class InvalidTokenResponseError(TokenRefreshError):
    """Raised when a 2xx token response cannot be used (bad JSON, no access_token)"""
    def __init__(self, message: str):
        super().__init__(message, "INVALID_TOKEN_RESPONSE")


class TransportError(TokenRefreshError):
    """Raised when the token endpoint cannot be reached or times out"""
    def __init__(self, message: str):
        super().__init__(message, "TRANSPORT_FAILURE")


class PersistenceError(TokenRefreshError):
    """
    Raised when writing a freshly minted token back to the store fails.

    The new token only exists in memory at this point, so the row has lost
    its credentials until the next successful refresh or reconnect.
    """
    def __init__(self, message: str):
        super().__init__(message, "PERSISTENCE_FAILURE")


class OAuthCallbackError(QboBridgeError):
    """Raised when the authorization-code exchange fails"""
    def __init__(self, message: str):
        super().__init__(message, "OAUTH_CALLBACK_ERROR")
