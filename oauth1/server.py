"""
OAuth 1.0 request verification.

The server runs a fixed sequence of checks over a request; the first
failing check raises and nothing after it runs:

    duplicates -> version -> consumer -> token -> timestamp -> nonce
            -> signature method -> signature
"""

import logging
import time

from oauth1.exceptions import (
    UnsupportedVersion, InvalidConsumer, InvalidToken, InvalidTimestamp,
    MissingTimestamp, ExpiredTimestamp, MissingNonce, NonceReused,
    UnsupportedSignatureMethod, InvalidSignature, DuplicateParameter,
)
from oauth1.request import OAUTH_VERSION

logger = logging.getLogger(__name__)

TIMESTAMP_THRESHOLD = 300  # seconds


class OAuthServer:

    def __init__(self, data_store, clock=time.time,
                 timestamp_threshold=TIMESTAMP_THRESHOLD):
        self.data_store = data_store
        self.clock = clock
        self.timestamp_threshold = timestamp_threshold
        self.signature_methods = {}

    def add_signature_method(self, signature_method):
        self.signature_methods[signature_method.name] = signature_method

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def fetch_request_token(self, request):
        """Process a request-token request."""
        self._check_parameters(request)
        self._check_version(request)
        consumer = self._get_consumer(request)
        # No token required for the initial token request
        self._check_signature(request, consumer, None)
        callback = request.get_parameter('oauth_callback')
        return self.data_store.new_request_token(consumer, callback)

    def fetch_access_token(self, request):
        """Process an access-token request."""
        self._check_parameters(request)
        self._check_version(request)
        consumer = self._get_consumer(request)
        token = self._get_token(request, consumer, 'request')
        self._check_signature(request, consumer, token)
        verifier = request.get_parameter('oauth_verifier')
        return self.data_store.new_access_token(token, consumer, verifier)

    def verify_request(self, request):
        """Verify a signed request.

        Returns:
            tuple: (consumer, token)
        """
        self._check_parameters(request)
        self._check_version(request)
        consumer = self._get_consumer(request)
        token = self._get_token(request, consumer, 'access')
        self._check_signature(request, consumer, token)
        return consumer, token

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_parameters(self, request):
        for name, value in request.get_parameters().items():
            if name.startswith('oauth_') and isinstance(value, list):
                raise DuplicateParameter(f'Duplicate {name} parameter')

    def _check_version(self, request):
        # Providers must assume 1.0 when the parameter is absent
        version = request.get_parameter('oauth_version') or OAUTH_VERSION
        if version != OAUTH_VERSION:
            raise UnsupportedVersion(f"OAuth version '{version}' not supported")

    def _get_consumer(self, request):
        consumer_key = request.get_parameter('oauth_consumer_key')
        if not consumer_key:
            raise InvalidConsumer('Invalid consumer key')

        consumer = self.data_store.lookup_consumer(consumer_key)
        if consumer is None:
            raise InvalidConsumer('Invalid consumer')
        return consumer

    def _get_token(self, request, consumer, token_type):
        token_field = request.get_parameter('oauth_token')
        token = self.data_store.lookup_token(consumer, token_type, token_field)
        if token is None:
            raise InvalidToken(f'Invalid {token_type} token: {token_field}')
        return token

    def _get_signature_method(self, request):
        method = request.get_parameter('oauth_signature_method')
        if not method:
            raise UnsupportedSignatureMethod(
                'No signature method parameter. This parameter is required')
        if method not in self.signature_methods:
            supported = ', '.join(self.signature_methods)
            raise UnsupportedSignatureMethod(
                f"Signature method '{method}' not supported, "
                f"try one of the following: {supported}")
        return self.signature_methods[method]

    def _check_signature(self, request, consumer, token):
        timestamp = request.get_parameter('oauth_timestamp')
        nonce = request.get_parameter('oauth_nonce')

        self._check_timestamp(timestamp)
        self._check_nonce(consumer, token, nonce, timestamp)

        signature_method = self._get_signature_method(request)
        signature = request.get_parameter('oauth_signature')
        if not signature_method.check_signature(request, consumer, token, signature):
            logger.debug('Signature mismatch; base string was %r', request.base_string)
            raise InvalidSignature('Invalid signature')

    def _check_timestamp(self, timestamp):
        if not timestamp:
            raise MissingTimestamp(
                'Missing timestamp parameter. The parameter is required')
        try:
            value = int(timestamp)
        except (TypeError, ValueError):
            raise InvalidTimestamp(f'Invalid timestamp parameter: {timestamp}')

        now = int(self.clock())
        if abs(now - value) > self.timestamp_threshold:
            raise ExpiredTimestamp(f'Expired timestamp, yours {value}, ours {now}')

    def _check_nonce(self, consumer, token, nonce, timestamp):
        if not nonce:
            raise MissingNonce('Missing nonce parameter. The parameter is required')
        if self.data_store.lookup_nonce(consumer, token, nonce, timestamp):
            raise NonceReused(f'Nonce already used: {nonce}')
