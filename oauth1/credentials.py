"""OAuth consumer and token credentials."""

from collections import namedtuple

from oauth1.util import urlencode_rfc3986


class Consumer(namedtuple('Consumer', ['key', 'secret', 'callback_url'])):
    """A consumer key and its shared secret."""
    __slots__ = ()

    def __new__(cls, key, secret, callback_url=None):
        return super().__new__(cls, key, secret, callback_url)

    def __str__(self):
        return f'OAuthConsumer[key={self.key}]'


class Token(namedtuple('Token', ['key', 'secret'])):
    """A request or access token and its secret."""
    __slots__ = ()

    def __str__(self):
        """Serialize the way a server answers request/access token calls."""
        return (f'oauth_token={urlencode_rfc3986(self.key)}'
                f'&oauth_token_secret={urlencode_rfc3986(self.secret)}')
