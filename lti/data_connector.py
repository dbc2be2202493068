"""
Storage port for tool consumers, resource links, users, nonces and share
keys.

Entities call the connector they were created with; the pipeline only ever
talks to this interface, so a backend is chosen by injecting an instance
(see ``models.connector.SQLAlchemyDataConnector``).
"""

import abc
import secrets
import string
from datetime import datetime, timezone

RANDOM_CHARS = string.ascii_uppercase + string.ascii_lowercase + string.digits


def utcnow():
    return datetime.now(timezone.utc)


class DataConnector(abc.ABC):

    def __init__(self, clock=utcnow):
        # Used for expiry sweeps and created/updated stamps
        self.clock = clock

    # ── Tool consumers ──────────────────────────────────────────────

    @abc.abstractmethod
    def tool_consumer_load(self, consumer):
        """Populate ``consumer`` from storage; return True if found."""

    @abc.abstractmethod
    def tool_consumer_save(self, consumer):
        pass

    @abc.abstractmethod
    def tool_consumer_delete(self, consumer):
        pass

    @abc.abstractmethod
    def tool_consumer_list(self):
        pass

    # ── Resource links ──────────────────────────────────────────────

    @abc.abstractmethod
    def resource_link_load(self, resource_link):
        pass

    @abc.abstractmethod
    def resource_link_save(self, resource_link):
        pass

    @abc.abstractmethod
    def resource_link_delete(self, resource_link):
        pass

    @abc.abstractmethod
    def resource_link_get_user_result_sourced_ids(self, resource_link,
                                                  local_only, id_scope):
        """Users with a result sourcedid, optionally keyed by scoped id."""

    @abc.abstractmethod
    def resource_link_get_shares(self, resource_link):
        """Resource links sharing ``resource_link`` as their primary."""

    # ── Nonces ──────────────────────────────────────────────────────

    @abc.abstractmethod
    def consumer_nonce_load(self, nonce):
        """Sweep expired nonces, then return True if ``nonce`` exists."""

    @abc.abstractmethod
    def consumer_nonce_save(self, nonce):
        pass

    def consumer_nonce_check_and_record(self, nonce):
        """Return True if ``nonce`` was already recorded, else record it.

        Backends able to do this atomically should override it.
        """
        if self.consumer_nonce_load(nonce):
            return True
        self.consumer_nonce_save(nonce)
        return False

    # ── Share keys ──────────────────────────────────────────────────

    @abc.abstractmethod
    def share_key_load(self, share_key):
        """Sweep expired keys, then populate ``share_key`` if it exists."""

    @abc.abstractmethod
    def share_key_save(self, share_key):
        pass

    @abc.abstractmethod
    def share_key_delete(self, share_key):
        pass

    # ── Users ───────────────────────────────────────────────────────

    @abc.abstractmethod
    def user_load(self, user):
        pass

    @abc.abstractmethod
    def user_save(self, user):
        pass

    @abc.abstractmethod
    def user_delete(self, user):
        pass

    # ── Unit of work ────────────────────────────────────────────────

    def commit(self):
        pass

    def rollback(self):
        pass

    @staticmethod
    def get_random_string(length=8):
        return ''.join(secrets.choice(RANDOM_CHARS) for _ in range(length))
