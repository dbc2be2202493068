"""A tool consumer (LMS instance) registered with this tool provider."""

from lti.user import IdScope


class ToolConsumer:
    """Consumer record, loaded from the data connector on construction.

    ``created is None`` means the record has never been persisted.
    """

    def __init__(self, key=None, data_connector=None, auto_enable=False):
        self.data_connector = data_connector
        self._initialise()
        if key:
            self._load(key, auto_enable)
        else:
            self.secret = data_connector.get_random_string(32)

    def _initialise(self):
        self._key = None
        self.name = None
        self.secret = None
        self.lti_version = None
        self.consumer_name = None
        self.consumer_version = None
        self.consumer_guid = None
        self.css_path = None
        self.protected = False
        self.enabled = False
        self.enable_from = None
        self.enable_until = None
        self.last_access = None
        self.id_scope = IdScope.ID_ONLY
        self.default_email = ''
        self.created = None
        self.updated = None

    @property
    def key(self):
        return self._key

    def get_key(self):
        return self._key

    def save(self):
        return self.data_connector.tool_consumer_save(self)

    def delete(self):
        return self.data_connector.tool_consumer_delete(self)

    def is_available(self, now):
        """True if enabled and ``now`` falls in [enable_from, enable_until)."""
        if not self.enabled:
            return False
        if self.enable_from is not None and self.enable_from > now:
            return False
        if self.enable_until is not None and self.enable_until <= now:
            return False
        return True

    def _load(self, key, auto_enable=False):
        self._initialise()
        self._key = key
        found = self.data_connector.tool_consumer_load(self)
        if not found:
            self.enabled = auto_enable
        return found

    def __repr__(self):
        return f'<ToolConsumer {self._key}>'
