"""
SQLAlchemy storage for the launch pipeline.

Entity saves are flushed into the request's session and only committed by
:meth:`SQLAlchemyDataConnector.commit`; nonces are the exception and are
committed as soon as they are recorded so a concurrent replay sees them.
"""

import json
import functools
import logging

from sqlalchemy import or_, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lti.data_connector import DataConnector, utcnow
from lti.exceptions import StorageFailure
from lti.share_key import ResourceLinkShare
from lti.tool_consumer import ToolConsumer
from lti.resource_link import ResourceLink
from lti.user import User
from models.database import (db, LtiConsumer, LtiResourceLink, LtiUser, LtiNonce,
                             LtiShareKey, to_db_time, from_db_time)

logger = logging.getLogger(__name__)


def _storage(method):
    """Re-raise database errors as StorageFailure."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.exception('%s failed', method.__name__)
            raise StorageFailure(f'Database error in {method.__name__}.') from e
    return wrapper


class SQLAlchemyDataConnector(DataConnector):

    def __init__(self, session=None, clock=utcnow):
        super().__init__(clock)
        self.session = session if session is not None else db.session

    def _now(self):
        return to_db_time(self.clock())

    # ── Tool consumers ──────────────────────────────────────────────

    @_storage
    def tool_consumer_load(self, consumer):
        row = self.session.get(LtiConsumer, consumer.get_key())
        if row is None:
            return False
        consumer.name = row.name
        consumer.secret = row.secret
        consumer.lti_version = row.lti_version
        consumer.consumer_name = row.consumer_name
        consumer.consumer_version = row.consumer_version
        consumer.consumer_guid = row.consumer_guid
        consumer.css_path = row.css_path
        consumer.protected = row.protected
        consumer.enabled = row.enabled
        consumer.enable_from = from_db_time(row.enable_from)
        consumer.enable_until = from_db_time(row.enable_until)
        consumer.last_access = from_db_time(row.last_access)
        consumer.created = from_db_time(row.created)
        consumer.updated = from_db_time(row.updated)
        return True

    @_storage
    def tool_consumer_save(self, consumer):
        now = self._now()
        row = self.session.get(LtiConsumer, consumer.get_key())
        if row is None:
            row = LtiConsumer(consumer_key=consumer.get_key(), created=now)
            self.session.add(row)
        row.name = consumer.name or ''
        row.secret = consumer.secret
        row.lti_version = consumer.lti_version
        row.consumer_name = consumer.consumer_name
        row.consumer_version = consumer.consumer_version
        row.consumer_guid = consumer.consumer_guid
        row.css_path = consumer.css_path
        row.protected = bool(consumer.protected)
        row.enabled = bool(consumer.enabled)
        row.enable_from = to_db_time(consumer.enable_from)
        row.enable_until = to_db_time(consumer.enable_until)
        row.last_access = to_db_time(consumer.last_access)
        row.updated = now
        self.session.flush()
        consumer.created = from_db_time(row.created)
        consumer.updated = from_db_time(now)
        return True

    @_storage
    def tool_consumer_delete(self, consumer):
        key = consumer.get_key()
        self.session.query(LtiNonce).filter_by(consumer_key=key).delete()
        self.session.query(LtiShareKey).filter_by(primary_consumer_key=key).delete()
        self.session.query(LtiUser).filter_by(consumer_key=key).delete()
        self.session.query(LtiResourceLink).filter_by(primary_consumer_key=key).update(
            {'primary_consumer_key': None, 'primary_resource_link_id': None,
             'share_approved': None})
        self.session.query(LtiResourceLink).filter_by(consumer_key=key).delete()
        deleted = self.session.query(LtiConsumer).filter_by(consumer_key=key).delete()
        self.session.flush()
        consumer.created = None
        consumer.updated = None
        return deleted > 0

    @_storage
    def tool_consumer_list(self):
        rows = self.session.query(LtiConsumer).order_by(LtiConsumer.name).all()
        return [ToolConsumer(row.consumer_key, self) for row in rows]

    # ── Resource links ──────────────────────────────────────────────

    @_storage
    def resource_link_load(self, resource_link):
        row = self.session.get(LtiResourceLink,
                               (resource_link.get_key(), resource_link.get_id()))
        if row is None:
            return False
        resource_link.lti_context_id = row.lti_context_id
        resource_link.lti_resource_id = row.lti_resource_id
        resource_link.title = row.title
        resource_link.settings = json.loads(row.settings) if row.settings else {}
        resource_link.primary_consumer_key = row.primary_consumer_key
        resource_link.primary_resource_link_id = row.primary_resource_link_id
        resource_link.share_approved = row.share_approved
        resource_link.created = from_db_time(row.created)
        resource_link.updated = from_db_time(row.updated)
        return True

    @_storage
    def resource_link_save(self, resource_link):
        now = self._now()
        row = self.session.get(LtiResourceLink,
                               (resource_link.get_key(), resource_link.get_id()))
        if row is None:
            row = LtiResourceLink(consumer_key=resource_link.get_key(),
                                  resource_link_id=resource_link.get_id(),
                                  created=now)
            self.session.add(row)
        row.lti_context_id = resource_link.lti_context_id
        row.lti_resource_id = resource_link.lti_resource_id
        row.title = resource_link.title or ''
        row.settings = json.dumps(resource_link.settings, sort_keys=True)
        row.primary_consumer_key = resource_link.primary_consumer_key
        row.primary_resource_link_id = resource_link.primary_resource_link_id
        row.share_approved = resource_link.share_approved
        row.updated = now
        self.session.flush()
        resource_link.created = from_db_time(row.created)
        resource_link.updated = from_db_time(now)
        return True

    @_storage
    def resource_link_delete(self, resource_link):
        key, link_id = resource_link.get_key(), resource_link.get_id()
        self.session.query(LtiShareKey).filter_by(
            primary_consumer_key=key,
            primary_resource_link_id=link_id).delete()
        self.session.query(LtiUser).filter_by(
            consumer_key=key, resource_link_id=link_id).delete()
        self.session.query(LtiResourceLink).filter_by(
            primary_consumer_key=key, primary_resource_link_id=link_id).update(
            {'primary_consumer_key': None, 'primary_resource_link_id': None,
             'share_approved': None})
        deleted = self.session.query(LtiResourceLink).filter_by(
            consumer_key=key, resource_link_id=link_id).delete()
        self.session.flush()
        resource_link.created = None
        resource_link.updated = None
        return deleted > 0

    @_storage
    def resource_link_get_user_result_sourced_ids(self, resource_link, local_only,
                                                  id_scope):
        key, link_id = resource_link.get_key(), resource_link.get_id()
        own = and_(LtiResourceLink.consumer_key == key,
                   LtiResourceLink.resource_link_id == link_id,
                   LtiResourceLink.primary_consumer_key.is_(None))
        if local_only:
            condition = own
        else:
            condition = or_(own, and_(
                LtiResourceLink.primary_consumer_key == key,
                LtiResourceLink.primary_resource_link_id == link_id,
                LtiResourceLink.share_approved.is_(True)))

        rows = (self.session.query(LtiUser)
                .join(LtiResourceLink, and_(
                    LtiUser.consumer_key == LtiResourceLink.consumer_key,
                    LtiUser.resource_link_id == LtiResourceLink.resource_link_id))
                .filter(condition)
                .order_by(LtiUser.consumer_key, LtiUser.resource_link_id, LtiUser.user_id)
                .all())

        # Users of sharing links keep their own link, whose settings hold
        # the outcome service details
        links = {(key, link_id): resource_link}
        users = []
        for row in rows:
            link_key = (row.consumer_key, row.resource_link_id)
            if link_key not in links:
                links[link_key] = ResourceLink(ToolConsumer(row.consumer_key, self),
                                               row.resource_link_id)
            users.append(User(links[link_key], row.user_id))

        if id_scope is None:
            return users
        return {user.get_id(id_scope): user for user in users}

    @_storage
    def resource_link_get_shares(self, resource_link):
        rows = (self.session.query(LtiResourceLink)
                .filter_by(primary_consumer_key=resource_link.get_key(),
                           primary_resource_link_id=resource_link.get_id())
                .order_by(LtiResourceLink.consumer_key)
                .all())
        return [ResourceLinkShare(row.consumer_key, row.resource_link_id,
                                  row.title, bool(row.share_approved))
                for row in rows]

    # ── Nonces ──────────────────────────────────────────────────────

    def _sweep_nonces(self):
        self.session.query(LtiNonce).filter(LtiNonce.expires <= self._now()).delete()

    @_storage
    def consumer_nonce_load(self, nonce):
        self._sweep_nonces()
        return self.session.get(LtiNonce, (nonce.get_key(), nonce.value)) is not None

    @_storage
    def consumer_nonce_save(self, nonce):
        self.session.add(LtiNonce(consumer_key=nonce.get_key(), value=nonce.value,
                                  expires=to_db_time(nonce.expires)))
        self.session.flush()
        return True

    def consumer_nonce_check_and_record(self, nonce):
        """Insert the nonce and commit; a key collision means a replay."""
        try:
            self._sweep_nonces()
            if self.session.get(LtiNonce, (nonce.get_key(), nonce.value)) is not None:
                self.session.commit()
                return True
            self.session.add(LtiNonce(consumer_key=nonce.get_key(), value=nonce.value,
                                      expires=to_db_time(nonce.expires)))
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return True
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception('consumer_nonce_check_and_record failed')
            raise StorageFailure('Database error recording nonce.') from e
        return False

    # ── Share keys ──────────────────────────────────────────────────

    @_storage
    def share_key_load(self, share_key):
        self.session.query(LtiShareKey).filter(LtiShareKey.expires <= self._now()).delete()
        row = self.session.get(LtiShareKey, share_key.id)
        if row is None:
            return False
        share_key.primary_consumer_key = row.primary_consumer_key
        share_key.primary_resource_link_id = row.primary_resource_link_id
        share_key.auto_approve = row.auto_approve
        share_key.expires = from_db_time(row.expires)
        return True

    @_storage
    def share_key_save(self, share_key):
        row = self.session.get(LtiShareKey, share_key.id)
        if row is None:
            row = LtiShareKey(share_key_id=share_key.id)
            self.session.add(row)
        row.primary_consumer_key = share_key.primary_consumer_key
        row.primary_resource_link_id = share_key.primary_resource_link_id
        row.auto_approve = bool(share_key.auto_approve)
        row.expires = to_db_time(share_key.expires)
        self.session.flush()
        return True

    @_storage
    def share_key_delete(self, share_key):
        deleted = self.session.query(LtiShareKey).filter_by(share_key_id=share_key.id).delete()
        self.session.flush()
        return deleted > 0

    # ── Users ───────────────────────────────────────────────────────

    def _user_pk(self, user):
        link = user.get_resource_link()
        return link.get_key(), link.get_id(), user.id

    @_storage
    def user_load(self, user):
        row = self.session.get(LtiUser, self._user_pk(user))
        if row is None:
            return False
        user.lti_result_sourcedid = row.lti_result_sourcedid
        user.created = from_db_time(row.created)
        user.updated = from_db_time(row.updated)
        return True

    @_storage
    def user_save(self, user):
        now = self._now()
        row = self.session.get(LtiUser, self._user_pk(user))
        if row is None:
            key, link_id, user_id = self._user_pk(user)
            row = LtiUser(consumer_key=key, resource_link_id=link_id, user_id=user_id,
                          created=now)
            self.session.add(row)
        row.lti_result_sourcedid = user.lti_result_sourcedid
        row.updated = now
        self.session.flush()
        user.created = from_db_time(row.created)
        user.updated = from_db_time(now)
        return True

    @_storage
    def user_delete(self, user):
        key, link_id, user_id = self._user_pk(user)
        deleted = self.session.query(LtiUser).filter_by(
            consumer_key=key, resource_link_id=link_id, user_id=user_id).delete()
        self.session.flush()
        user.lti_result_sourcedid = None
        user.created = None
        user.updated = None
        return deleted > 0

    # ── Unit of work ────────────────────────────────────────────────

    @_storage
    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
