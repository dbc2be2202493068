"""
Shared test fixtures.

Fixtures:
  - clock:           mutable fixed clock (aware UTC datetime)
  - app:             Flask app on in-memory SQLite, app context pushed
  - client:          Flask test client
  - connector:       SQLAlchemyDataConnector using the fixed clock
  - add_consumer:    factory registering a tool consumer
  - signed_launch:   factory building a correctly signed LaunchRequest
  - make_provider:   factory building a ToolProvider on the fixed clock
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from config import TestConfig
from lti.launch import LaunchRequest
from lti.tool_consumer import ToolConsumer
from lti.tool_provider import ToolProvider
from models.connector import SQLAlchemyDataConnector
from models.database import db
from oauth1.credentials import Consumer
from oauth1.request import OAuthRequest
from oauth1.signature import HmacSha1

LAUNCH_URL = 'https://tool.example.com/lti/launch'
START = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def connector(app, clock):
    return SQLAlchemyDataConnector(clock=clock)


@pytest.fixture
def add_consumer(connector):
    def _add(key='ck1', secret='secret1', enabled=True, **fields):
        consumer = ToolConsumer(key, connector)
        consumer.name = key
        consumer.secret = secret
        consumer.enabled = enabled
        for name, value in fields.items():
            setattr(consumer, name, value)
        consumer.save()
        connector.commit()
        return consumer
    return _add


def launch_params(**overrides):
    params = {
        'lti_message_type': 'basic-lti-launch-request',
        'lti_version': 'LTI-1p0',
        'resource_link_id': 'rl1',
        'user_id': 'u1',
        'roles': 'Learner',
        'lis_person_name_full': 'Ada Lovelace',
    }
    params.update(overrides)
    return {k: v for k, v in params.items() if v is not None}


@pytest.fixture
def signed_launch(clock):
    """Build a signed launch; pass ``None`` for a parameter to drop it."""
    counter = {'n': 0}

    def _sign(key='ck1', secret='secret1', url=LAUNCH_URL, timestamp=None,
              nonce=None, **params):
        counter['n'] += 1
        consumer = Consumer(key, secret)
        request = OAuthRequest.from_consumer_and_token(
            consumer, None, 'POST', url, launch_params(**params))
        request.set_parameter('oauth_timestamp',
                              str(timestamp if timestamp is not None
                                  else int(clock().timestamp())),
                              allow_duplicates=False)
        request.set_parameter('oauth_nonce', nonce or f'nonce-{counter["n"]}',
                              allow_duplicates=False)
        request.sign_request(HmacSha1(), consumer, None)
        return LaunchRequest('POST', url, request.get_parameters())

    return _sign


@pytest.fixture
def make_provider(connector, clock):
    def _make(**kwargs):
        return ToolProvider(connector, clock=clock, **kwargs)
    return _make
