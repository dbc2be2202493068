"""Nonce values received from a tool consumer, kept to prevent replays."""

import base64
import binascii
import re
from datetime import timedelta

MAX_NONCE_AGE = timedelta(minutes=30)
MAX_NONCE_LENGTH = 32  # characters

_NON_PRINTABLE = re.compile(rb'[^\x20-\x7f]')


def normalize_nonce(value):
    """Fit a raw nonce into ``MAX_NONCE_LENGTH`` characters.

    Long values are first tried as base64: the decoded form is used when it
    only holds printable ASCII. Anything still too long is truncated.
    """
    if value is None:
        return None
    if len(value) > MAX_NONCE_LENGTH:
        try:
            decoded = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            decoded = None
        if decoded is not None and not _NON_PRINTABLE.search(decoded):
            value = decoded.decode('ascii')
    if len(value) > MAX_NONCE_LENGTH:
        value = value[:MAX_NONCE_LENGTH]
    return value


class ConsumerNonce:

    def __init__(self, consumer, value, now):
        self.consumer = consumer
        self.value = normalize_nonce(value)
        self.expires = now + MAX_NONCE_AGE

    def get_key(self):
        return self.consumer.get_key()

    def load(self):
        return self.consumer.data_connector.consumer_nonce_load(self)

    def save(self):
        return self.consumer.data_connector.consumer_nonce_save(self)

    def check_and_record(self):
        """Return True if this nonce was already used; record it if not."""
        return self.consumer.data_connector.consumer_nonce_check_and_record(self)
