"""
Values passed into and out of the launch pipeline.

The transport layer builds one :class:`LaunchRequest` per HTTP request; the
pipeline answers with one of the outcome classes below.
"""

from werkzeug.datastructures import ImmutableMultiDict


class LaunchRequest:
    """An inbound launch, detached from any web framework.

    Args:
        method: effective HTTP method (``POST`` for launches)
        url: absolute URL the consumer signed, query string included
        parameters: form and query parameters, as a mapping or list of pairs
        authorization: value of the ``Authorization`` header, if any
    """

    def __init__(self, method, url, parameters=None, authorization=None):
        self.method = method
        self.url = url
        self.parameters = ImmutableMultiDict(parameters or [])
        self.authorization = authorization

    def get(self, name, default=None):
        return self.parameters.get(name, default)

    def __contains__(self, name):
        return name in self.parameters


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class Proceed:
    """Launch authenticated; the caller renders its own response."""

    def __init__(self, consumer, resource_link, user):
        self.consumer = consumer
        self.resource_link = resource_link
        self.user = user

    def __repr__(self):
        return f'<Proceed {self.resource_link!r} {self.user!r}>'


class RedirectTo:

    def __init__(self, url):
        self.url = url

    def __repr__(self):
        return f'<RedirectTo {self.url}>'


class Output:
    """HTML to display to the user."""

    def __init__(self, html):
        self.html = html


class ErrorMessage:
    """Launch refused.

    ``reason`` is the detailed cause and is only filled in debug mode;
    ``error`` is the exception describing the failure, if any.
    """

    def __init__(self, text, reason=None, error=None):
        self.text = text
        self.reason = reason
        self.error = error

    def __repr__(self):
        return f'<ErrorMessage {self.text!r}>'


class LaunchHandler:
    """Callbacks invoked by :meth:`ToolProvider.execute`.

    Subclass and override; both methods receive the provider so they can
    read its consumer, resource link, user and reason.
    """

    def on_connect(self, provider):
        """Called after a successful launch. Return an outcome."""
        return Proceed(provider.consumer, provider.resource_link, provider.user)

    def on_error(self, provider):
        """Called after a failed launch.

        Return an outcome to replace the default error response, or None
        to keep it.
        """
        return None
