"""
Share keys let one resource link borrow the identity of another.

An instructor on the primary link issues a key; launching a second link
with ``custom_share_key`` set to it redeems the key once.
"""

from datetime import timedelta

MAX_SHARE_KEY_LIFE = 168  # hours (1 week)
DEFAULT_SHARE_KEY_LIFE = 24  # hours
MIN_SHARE_KEY_LENGTH = 5
MAX_SHARE_KEY_LENGTH = 32


class ResourceLinkShareKey:

    def __init__(self, resource_link, share_key_id=None):
        self.data_connector = resource_link.consumer.data_connector
        self._initialise()
        self.id = share_key_id
        if share_key_id:
            self._load()
        else:
            self.primary_consumer_key = resource_link.get_key()
            self.primary_resource_link_id = resource_link.get_id()

    def _initialise(self):
        self.primary_consumer_key = None
        self.primary_resource_link_id = None
        self.length = None
        self.life = None
        self.auto_approve = False
        self.expires = None

    def save(self):
        """Persist the key, generating an id if it has none.

        Life is clamped to [0, 168] hours and defaults to 24; generated ids
        are 5 to 32 characters long (32 by default).
        """
        if not self.life:
            self.life = DEFAULT_SHARE_KEY_LIFE
        else:
            self.life = max(min(self.life, MAX_SHARE_KEY_LIFE), 0)
        self.expires = self.data_connector.clock() + timedelta(hours=self.life)

        if not self.id:
            if not self.length or not isinstance(self.length, int):
                self.length = MAX_SHARE_KEY_LENGTH
            else:
                self.length = max(min(self.length, MAX_SHARE_KEY_LENGTH),
                                  MIN_SHARE_KEY_LENGTH)
            self.id = self.data_connector.get_random_string(self.length)

        return self.data_connector.share_key_save(self)

    def delete(self):
        return self.data_connector.share_key_delete(self)

    def get_id(self):
        return self.id

    def _load(self):
        share_key_id = self.id
        self._initialise()
        if self.data_connector.share_key_load(self):
            self.length = len(share_key_id)
            remaining = self.expires - self.data_connector.clock()
            self.life = remaining.total_seconds() / 3600


class ResourceLinkShare:
    """A resource link which is sharing another (read model)."""

    def __init__(self, consumer_key, resource_link_id, title=None, approved=None):
        self.consumer_key = consumer_key
        self.resource_link_id = resource_link_id
        self.title = title
        self.approved = approved

    @property
    def context_id(self):
        """Legacy name for :attr:`resource_link_id`."""
        return self.resource_link_id

    def __repr__(self):
        return f'<ResourceLinkShare {self.consumer_key}/{self.resource_link_id}>'
