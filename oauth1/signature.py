"""
Signature methods (RFC 5849 section 3.4).

Only HMAC-SHA1 is registered by the tool provider, but the server accepts
any object implementing :class:`SignatureMethod`.
"""

import abc
import base64
import hashlib
import hmac

from oauth1.util import urlencode_rfc3986, constant_time_equals


class SignatureMethod(abc.ABC):
    """Strategy producing and checking a signature over a request."""

    #: Registered identifier, the value of ``oauth_signature_method``
    name = None

    @abc.abstractmethod
    def build_signature(self, request, consumer, token):
        """Return the signature for ``request``.

        The result must not be percent-encoded; encoding happens when the
        request is serialized.
        """

    def check_signature(self, request, consumer, token, signature):
        """Return True if ``signature`` is the one this method would build."""
        built = self.build_signature(request, consumer, token)
        if not signature or not isinstance(signature, str):
            return False
        return constant_time_equals(built, signature)


class HmacSha1(SignatureMethod):
    name = 'HMAC-SHA1'

    def build_signature(self, request, consumer, token):
        base_string = request.get_signature_base_string()
        request.base_string = base_string

        token_secret = token.secret if token is not None else ''
        key = '&'.join(urlencode_rfc3986([consumer.secret or '', token_secret or '']))

        hashed = hmac.new(
            key.encode('utf-8'),
            base_string.encode('utf-8'),
            hashlib.sha1
        )
        return base64.b64encode(hashed.digest()).decode('utf-8')
