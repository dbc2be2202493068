"""
OAuth 1.0 verification errors.

Every check performed by the server raises one of these; the first failure
is terminal for the request being verified.
"""


class OAuthException(Exception):
    """Base class for all OAuth verification errors."""


class UnsupportedVersion(OAuthException):
    pass


class InvalidConsumer(OAuthException):
    pass


class InvalidToken(OAuthException):
    pass


class InvalidTimestamp(OAuthException):
    """Timestamp parameter is not a whole number of seconds."""


class MissingTimestamp(InvalidTimestamp):
    pass


class ExpiredTimestamp(InvalidTimestamp):
    pass


class MissingNonce(OAuthException):
    pass


class NonceReused(OAuthException):
    pass


class UnsupportedSignatureMethod(OAuthException):
    pass


class InvalidSignature(OAuthException):
    pass


class DuplicateParameter(OAuthException):
    """An ``oauth_*`` parameter was sent more than once."""
