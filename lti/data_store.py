"""OAuth lookups answered from the tool provider's current launch."""

from oauth1.credentials import Consumer, Token
from oauth1.data_store import DataStore
from lti.nonce import ConsumerNonce


class OAuthDataStore(DataStore):
    """Data store scoped to the tool consumer being launched from.

    Launch requests carry no token, so token lookups return a placeholder
    with an empty secret.
    """

    def __init__(self, tool_provider):
        self.tool_provider = tool_provider

    def lookup_consumer(self, consumer_key):
        tool_consumer = self.tool_provider.consumer
        if tool_consumer is None or tool_consumer.get_key() != consumer_key:
            return None
        return Consumer(tool_consumer.get_key(), tool_consumer.secret or '')

    def lookup_token(self, consumer, token_type, token):
        return Token(consumer.key, '')

    def lookup_nonce(self, consumer, token, nonce, timestamp):
        record = ConsumerNonce(self.tool_provider.consumer, nonce,
                               self.tool_provider.now)
        return record.check_and_record()
