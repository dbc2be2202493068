"""Tests for OAuthServer.verify_request and its check order."""

import pytest

from oauth1.credentials import Consumer, Token
from oauth1.data_store import DataStore
from oauth1.exceptions import (UnsupportedVersion, InvalidConsumer, InvalidToken,
                               InvalidTimestamp, MissingTimestamp, ExpiredTimestamp,
                               MissingNonce, NonceReused, UnsupportedSignatureMethod,
                               InvalidSignature, DuplicateParameter)
from oauth1.request import OAuthRequest
from oauth1.server import OAuthServer
from oauth1.signature import HmacSha1

NOW = 1_700_000_000
URL = 'https://tool.example.com/lti/launch'
CONSUMER = Consumer('ck1', 'secret1')


class MemoryDataStore(DataStore):

    def __init__(self, with_token=True):
        self.consumers = {CONSUMER.key: CONSUMER}
        self.nonces = set()
        self.with_token = with_token

    def lookup_consumer(self, consumer_key):
        return self.consumers.get(consumer_key)

    def lookup_token(self, consumer, token_type, token):
        return Token('', '') if self.with_token else None

    def lookup_nonce(self, consumer, token, nonce, timestamp):
        if (consumer.key, nonce) in self.nonces:
            return True
        self.nonces.add((consumer.key, nonce))
        return False


def signed(consumer=CONSUMER, secret=None, timestamp=NOW, nonce='n1', **extra):
    params = {'resource_link_id': 'rl1'}
    params.update(extra)
    request = OAuthRequest.from_consumer_and_token(consumer, None, 'POST', URL, params)
    request.set_parameter('oauth_timestamp', str(timestamp), allow_duplicates=False)
    request.set_parameter('oauth_nonce', nonce, allow_duplicates=False)
    signer = Consumer(consumer.key, secret if secret is not None else consumer.secret)
    request.sign_request(HmacSha1(), signer, None)
    return request


@pytest.fixture
def store():
    return MemoryDataStore()


@pytest.fixture
def server(store):
    server = OAuthServer(store, clock=lambda: NOW)
    server.add_signature_method(HmacSha1())
    return server


class TestVerifyRequest:

    def test_valid_request(self, server):
        consumer, token = server.verify_request(signed())
        assert consumer == CONSUMER
        assert token == Token('', '')

    def test_missing_version_defaults_to_1_0(self, server):
        request = signed()
        request.unset_parameter('oauth_version')
        request.sign_request(HmacSha1(), CONSUMER, None)
        server.verify_request(request)

    def test_unsupported_version(self, server):
        with pytest.raises(UnsupportedVersion):
            server.verify_request(signed(oauth_version='2.0'))

    def test_unknown_consumer(self, server):
        with pytest.raises(InvalidConsumer):
            server.verify_request(signed(consumer=Consumer('nobody', 'x')))

    def test_missing_token(self):
        server = OAuthServer(MemoryDataStore(with_token=False), clock=lambda: NOW)
        server.add_signature_method(HmacSha1())
        with pytest.raises(InvalidToken):
            server.verify_request(signed())

    def test_missing_timestamp(self, server):
        request = signed()
        request.unset_parameter('oauth_timestamp')
        with pytest.raises(MissingTimestamp):
            server.verify_request(request)

    def test_non_numeric_timestamp(self, server):
        with pytest.raises(InvalidTimestamp) as excinfo:
            server.verify_request(signed(timestamp='soon'))
        assert not isinstance(excinfo.value, ExpiredTimestamp)

    @pytest.mark.parametrize('skew', [-300, 0, 300])
    def test_timestamp_within_window(self, server, skew):
        server.verify_request(signed(timestamp=NOW + skew, nonce=f'n{skew}'))

    @pytest.mark.parametrize('skew', [-301, 301])
    def test_timestamp_outside_window(self, server, skew):
        with pytest.raises(ExpiredTimestamp):
            server.verify_request(signed(timestamp=NOW + skew))

    def test_missing_nonce(self, server):
        request = signed()
        request.unset_parameter('oauth_nonce')
        with pytest.raises(MissingNonce):
            server.verify_request(request)

    def test_replayed_nonce(self, server):
        server.verify_request(signed(nonce='once'))
        with pytest.raises(NonceReused):
            server.verify_request(signed(nonce='once'))

    def test_unsupported_signature_method(self, server):
        request = signed()
        request.set_parameter('oauth_signature_method', 'PLAINTEXT',
                              allow_duplicates=False)
        with pytest.raises(UnsupportedSignatureMethod):
            server.verify_request(request)

    def test_wrong_secret(self, server):
        with pytest.raises(InvalidSignature):
            server.verify_request(signed(secret='not-the-secret'))

    def test_tampered_parameter(self, server):
        request = signed()
        request.set_parameter('resource_link_id', 'rl2', allow_duplicates=False)
        with pytest.raises(InvalidSignature):
            server.verify_request(request)

    @pytest.mark.parametrize('name, extra', [
        ('oauth_nonce', 'other'),
        ('oauth_signature_method', 'PLAINTEXT'),
    ])
    def test_repeated_oauth_parameter(self, server, store, name, extra):
        request = signed(nonce='dup')
        request.set_parameter(name, extra)
        with pytest.raises(DuplicateParameter):
            server.verify_request(request)
        assert not store.nonces

    def test_repeated_plain_parameter_is_signed(self, server):
        request = signed(roles=['Learner', 'Mentor'])
        assert server.verify_request(request)[0] is CONSUMER

    def test_expired_request_does_not_consume_nonce(self, server, store):
        with pytest.raises(ExpiredTimestamp):
            server.verify_request(signed(timestamp=NOW - 1000, nonce='late'))
        assert ('ck1', 'late') not in store.nonces


class TestTokenFlows:

    def test_token_issuance_is_not_supported(self, server):
        assert server.fetch_request_token(signed(nonce='rt')) is None

    def test_access_token_request(self, server, store):
        assert server.fetch_access_token(signed(nonce='at')) is None
        assert ('ck1', 'at') in store.nonces

    def test_access_token_requires_request_token(self):
        server = OAuthServer(MemoryDataStore(with_token=False), clock=lambda: NOW)
        server.add_signature_method(HmacSha1())
        with pytest.raises(InvalidToken, match='Invalid request token'):
            server.fetch_access_token(signed())
