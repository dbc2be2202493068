"""Lookup ports the OAuth server needs from its host application."""

import abc


class DataStore(abc.ABC):

    @abc.abstractmethod
    def lookup_consumer(self, consumer_key):
        """Return the :class:`Consumer` for ``consumer_key`` or None."""

    @abc.abstractmethod
    def lookup_token(self, consumer, token_type, token):
        """Return the :class:`Token` of ``token_type`` or None."""

    @abc.abstractmethod
    def lookup_nonce(self, consumer, token, nonce, timestamp):
        """Return True if the nonce has been seen before.

        A False answer must also record the nonce, so the check and the
        insert happen as one step.
        """

    def new_request_token(self, consumer, callback=None):
        return None

    def new_access_token(self, token, consumer, verifier=None):
        return None
