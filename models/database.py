from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone

db = SQLAlchemy()


def to_db_time(value):
    """Aware datetime -> naive UTC, as stored in DateTime columns."""
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value):
    """Naive UTC from a DateTime column -> aware datetime."""
    if value is not None and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class LtiConsumer(db.Model):
    """A tool consumer (LMS) allowed to launch this tool."""
    __tablename__ = 'lti_consumer'

    consumer_key = db.Column(db.String(255), primary_key=True)
    name = db.Column(db.String(45), nullable=False, default='')
    secret = db.Column(db.String(255), nullable=True)  # None for auto-enabled consumers
    lti_version = db.Column(db.String(12), nullable=True)
    consumer_name = db.Column(db.String(255), nullable=True)
    consumer_version = db.Column(db.String(255), nullable=True)
    consumer_guid = db.Column(db.String(255), nullable=True)
    css_path = db.Column(db.String(255), nullable=True)
    protected = db.Column(db.Boolean, nullable=False, default=False)
    enabled = db.Column(db.Boolean, nullable=False, default=False)
    enable_from = db.Column(db.DateTime, nullable=True)
    enable_until = db.Column(db.DateTime, nullable=True)
    last_access = db.Column(db.DateTime, nullable=True)
    created = db.Column(db.DateTime, nullable=False, default=lambda: to_db_time(datetime.now(timezone.utc)))
    updated = db.Column(db.DateTime, nullable=False, default=lambda: to_db_time(datetime.now(timezone.utc)))

    resource_links = db.relationship('LtiResourceLink', backref='consumer', lazy='dynamic')

    def __repr__(self):
        return f'<LtiConsumer {self.consumer_key}>'


class LtiResourceLink(db.Model):
    """A placement of the tool in a consumer, plus its launch settings."""
    __tablename__ = 'lti_resource_link'

    consumer_key = db.Column(db.String(255), db.ForeignKey('lti_consumer.consumer_key'),
                             primary_key=True)
    resource_link_id = db.Column(db.String(255), primary_key=True)
    lti_context_id = db.Column(db.String(255), nullable=True)
    lti_resource_id = db.Column(db.String(255), nullable=True)
    title = db.Column(db.String(255), nullable=False, default='')
    settings = db.Column(db.Text, nullable=True)  # JSON object
    primary_consumer_key = db.Column(db.String(255), nullable=True)
    primary_resource_link_id = db.Column(db.String(255), nullable=True)
    share_approved = db.Column(db.Boolean, nullable=True)
    created = db.Column(db.DateTime, nullable=False)
    updated = db.Column(db.DateTime, nullable=False)

    users = db.relationship('LtiUser', backref='resource_link', lazy='dynamic')

    def __repr__(self):
        return f'<LtiResourceLink {self.consumer_key}/{self.resource_link_id}>'


class LtiUser(db.Model):
    """A user holding a result sourcedid for a resource link."""
    __tablename__ = 'lti_user'
    __table_args__ = (
        db.ForeignKeyConstraint(
            ['consumer_key', 'resource_link_id'],
            ['lti_resource_link.consumer_key', 'lti_resource_link.resource_link_id']),
    )

    consumer_key = db.Column(db.String(255), primary_key=True)
    resource_link_id = db.Column(db.String(255), primary_key=True)
    user_id = db.Column(db.String(255), primary_key=True)
    lti_result_sourcedid = db.Column(db.String(255), nullable=False)
    created = db.Column(db.DateTime, nullable=False)
    updated = db.Column(db.DateTime, nullable=False)

    def __repr__(self):
        return f'<LtiUser {self.user_id} ({self.consumer_key}/{self.resource_link_id})>'


class LtiNonce(db.Model):
    """A nonce seen on a launch; rows are swept once expired."""
    __tablename__ = 'lti_nonce'

    # No foreign key: nonces are recorded before an auto-enabled consumer is saved
    consumer_key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.String(32), primary_key=True)
    expires = db.Column(db.DateTime, nullable=False, index=True)

    def __repr__(self):
        return f'<LtiNonce {self.consumer_key}:{self.value}>'


class LtiShareKey(db.Model):
    """A single-use key granting access to share a resource link."""
    __tablename__ = 'lti_share_key'

    share_key_id = db.Column(db.String(32), primary_key=True)
    primary_consumer_key = db.Column(db.String(255), nullable=False)
    primary_resource_link_id = db.Column(db.String(255), nullable=False)
    auto_approve = db.Column(db.Boolean, nullable=False, default=False)
    expires = db.Column(db.DateTime, nullable=False, index=True)

    def __repr__(self):
        return f'<LtiShareKey {self.share_key_id}>'
