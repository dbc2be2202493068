"""
OAuth 1.0 request model.

Holds an HTTP method, URL and multi-valued parameter map and produces the
signature base string defined in RFC 5849 section 3.4.1.
"""

import time
import uuid
import urllib.parse

from oauth1.exceptions import OAuthException
from oauth1.util import (urlencode_rfc3986, parse_parameters,
                         build_http_query, split_header)

OAUTH_VERSION = '1.0'


class OAuthRequest:
    """An HTTP request as seen by the OAuth signing rules."""

    def __init__(self, http_method, http_url, parameters=None):
        merged = parse_parameters(urllib.parse.urlparse(http_url).query)
        merged.update(parameters or {})
        self.parameters = merged
        self.http_method = http_method
        self.http_url = http_url
        # Kept for debugging signature mismatches
        self.base_string = None

    @classmethod
    def from_launch(cls, launch_request):
        """Build a request from an inbound launch.

        Form/query parameters are taken from the launch; any OAuth
        parameters in an ``Authorization`` header override them.
        """
        parameters = {}
        for name, values in launch_request.parameters.lists():
            parameters[name] = values[0] if len(values) == 1 else list(values)

        auth = launch_request.authorization
        if auth and auth[:6].lower() == 'oauth ':
            parameters.update(split_header(auth))

        return cls(launch_request.method, launch_request.url, parameters)

    @classmethod
    def from_consumer_and_token(cls, consumer, token, http_method, http_url,
                                parameters=None):
        """Set up an outgoing request with fresh nonce and timestamp."""
        defaults = {
            'oauth_version': OAUTH_VERSION,
            'oauth_nonce': generate_nonce(),
            'oauth_timestamp': generate_timestamp(),
            'oauth_consumer_key': consumer.key,
        }
        if token is not None:
            defaults['oauth_token'] = token.key
        defaults.update(parameters or {})
        return cls(http_method, http_url, defaults)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def set_parameter(self, name, value, allow_duplicates=True):
        if allow_duplicates and name in self.parameters:
            existing = self.parameters[name]
            if not isinstance(existing, list):
                # First duplicate turns the scalar into a list
                existing = [existing]
                self.parameters[name] = existing
            existing.append(value)
        else:
            self.parameters[name] = value

    def get_parameter(self, name):
        return self.parameters.get(name)

    def get_parameters(self):
        return self.parameters

    def unset_parameter(self, name):
        self.parameters.pop(name, None)

    # ------------------------------------------------------------------
    # Signature base string
    # ------------------------------------------------------------------

    def get_signable_parameters(self):
        """All parameters except ``oauth_signature``, normalized."""
        params = {k: v for k, v in self.parameters.items()
                  if k != 'oauth_signature'}
        return build_http_query(params)

    def get_normalized_http_method(self):
        return self.http_method.upper()

    def get_normalized_http_url(self):
        """Rebuild the URL as scheme://host[:port]/path.

        Default ports (80 for http, 443 for https) are dropped.
        """
        parts = urllib.parse.urlparse(self.http_url)
        scheme = (parts.scheme or 'http').lower()
        host = (parts.hostname or '').lower()
        if ':' in host:
            # IPv6 literal
            host = f'[{host}]'
        port = parts.port
        if port is not None:
            if not ((scheme == 'http' and port == 80)
                    or (scheme == 'https' and port == 443)):
                host = f'{host}:{port}'
        return f'{scheme}://{host}{parts.path}'

    def get_signature_base_string(self):
        parts = urlencode_rfc3986([
            self.get_normalized_http_method(),
            self.get_normalized_http_url(),
            self.get_signable_parameters(),
        ])
        return '&'.join(parts)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_postdata(self):
        return build_http_query(self.parameters)

    def to_url(self):
        post_data = self.to_postdata()
        out = self.get_normalized_http_url()
        if post_data:
            out += '?' + post_data
        return out

    def to_header(self, realm=None):
        """Build the value of an ``Authorization`` header.

        Only ``oauth*`` parameters are included.
        """
        items = []
        if realm:
            items.append(f'realm="{urlencode_rfc3986(realm)}"')
        for name, value in self.parameters.items():
            if not name.startswith('oauth'):
                continue
            if isinstance(value, list):
                raise OAuthException('Arrays not supported in headers')
            items.append(f'{urlencode_rfc3986(name)}="{urlencode_rfc3986(value)}"')
        return 'OAuth ' + ','.join(items)

    def __str__(self):
        return self.to_url()

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_request(self, signature_method, consumer, token):
        self.set_parameter('oauth_signature_method', signature_method.name,
                           allow_duplicates=False)
        signature = self.build_signature(signature_method, consumer, token)
        self.set_parameter('oauth_signature', signature, allow_duplicates=False)

    def build_signature(self, signature_method, consumer, token):
        return signature_method.build_signature(self, consumer, token)


def generate_timestamp():
    return str(int(time.time()))


def generate_nonce():
    return uuid.uuid4().hex
