"""
Resource link sharing.

A link may borrow the identity of a *primary* link (typically in another
course) so both feed one grade book. The arrangement starts when a launch
carries ``custom_share_key``; the key is redeemed once and the primary link
must approve the share before launches are let through.
"""

import logging

from lti.exceptions import ShareRejected
from lti.resource_link import ResourceLink
from lti.share_key import ResourceLinkShareKey
from lti.tool_consumer import ToolConsumer

logger = logging.getLogger(__name__)


class ShareNegotiator:

    def __init__(self, provider):
        self.provider = provider

    def redeem(self, share_key_value):
        """Point the provider's resource link at the link a share key names.

        Runs before any other launch data is written so the commit below
        carries only the share pointer and the spent key.

        Raises:
            ShareRejected: sharing is not permitted or the key names this link.
        """
        if not share_key_value:
            return
        provider = self.provider
        if not provider.allow_sharing:
            raise ShareRejected('Your sharing request has been refused because '
                                'sharing is not being permitted.')

        link = provider.resource_link
        share_key = ResourceLinkShareKey(link, share_key_value)
        key = share_key.primary_consumer_key
        link_id = share_key.primary_resource_link_id
        if key is None or link_id is None:
            return
        if key == provider.consumer.get_key() and link_id == link.get_id():
            raise ShareRejected('It is not possible to share your resource '
                                'link with yourself.')

        # Link rows reference their consumer
        if provider.consumer.created is None:
            provider.consumer.save()
        self._adopt(link, key, link_id, share_key.auto_approve)
        # Single use
        share_key.delete()
        # A pending share must outlive this launch so it can be approved
        provider.data_connector.commit()
        logger.info('Share key %s redeemed by %s/%s',
                    share_key_value, link.get_key(), link.get_id())

    def negotiate(self, share_key_value):
        """Resolve the share arrangement for the provider's resource link.

        On success the provider's active resource link is replaced by the
        primary link when a share is in place.

        Raises:
            ShareRejected: the share is unapproved or unresolvable.
        """
        provider = self.provider
        link = provider.resource_link
        key = link.primary_consumer_key
        link_id = link.primary_resource_link_id

        if share_key_value:
            if key is None:
                raise ShareRejected('You have requested to share a resource link '
                                    'but none is available.')
            if not link.share_approved:
                raise ShareRejected('Your share request is waiting to be approved.')
        elif key is not None:
            raise ShareRejected('You have not requested to share a resource link '
                                'but an arrangement is currently in place.')

        if key is not None:
            primary_consumer = ToolConsumer(key, provider.data_connector)
            primary = None
            if primary_consumer.created is not None:
                primary = ResourceLink(primary_consumer, link_id)
            if primary is None or primary.created is None:
                raise ShareRejected('Unable to load resource link being shared.')
            link.save()
            provider.resource_link = primary

    def _adopt(self, link, key, link_id, approved):
        link.primary_consumer_key = key
        link.primary_resource_link_id = link_id
        link.share_approved = approved
        if not link.save():
            raise ShareRejected('An error occurred initialising your share arrangement.')
