"""
LTI 1.0 tool provider: authenticates a basic launch request and establishes
the tool consumer, resource link and user it was made for.

Typical use from a view::

    provider = ToolProvider(connector, handler=MyHandler(), allow_sharing=True)
    outcome = provider.execute(launch_request)

``execute`` never raises for a refused launch; the refusal is logged and
returned as a :class:`~lti.launch.RedirectTo` (back to the consumer) or an
:class:`~lti.launch.ErrorMessage`.
"""

import logging
import urllib.parse

from oauth1.exceptions import (OAuthException, ExpiredTimestamp, NonceReused,
                               InvalidSignature)
from oauth1.server import OAuthServer
from oauth1.request import OAuthRequest
from oauth1.signature import HmacSha1
from lti.data_connector import utcnow
from lti.data_store import OAuthDataStore
from lti.exceptions import (LTIError, ProtocolError, SignatureInvalid,
                            ReplayDetected, TimestampExpired, ConsumerRejected,
                            ParameterConstraintViolation)
from lti.launch import LaunchHandler, RedirectTo, ErrorMessage
from lti.resource_link import ResourceLink
from lti.sharing import ShareNegotiator
from lti.tool_consumer import ToolConsumer
from lti.user import User, IdScope, parse_roles

logger = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = 'Sorry, there was an error connecting you to the application.'
LTI_VERSION = 'LTI-1p0'
LAUNCH_MESSAGE_TYPE = 'basic-lti-launch-request'

# Launch parameters retained in the resource link's settings
LTI_SETTINGS_NAMES = (
    'ext_resource_link_content',
    'ext_resource_link_content_signature',
    'lis_result_sourcedid',
    'lis_outcome_service_url',
    'ext_ims_lis_basic_outcome_url',
    'ext_ims_lis_resultvalue_sourcedids',
    'ext_ims_lis_memberships_id',
    'ext_ims_lis_memberships_url',
    'ext_ims_lti_tool_setting',
    'ext_ims_lti_tool_setting_id',
    'ext_ims_lti_tool_setting_url',
)

SIGNATURE_FAILED = 'OAuth signature check failed - perhaps an incorrect secret or timestamp.'


class ToolProvider:
    """Launch pipeline bound to one data connector.

    A provider handles one launch; create a new one per request.

    Args:
        data_connector: storage backend (a ``DataConnector``)
        handler: ``LaunchHandler`` whose callbacks produce the outcome
        auto_enable: accept launches from consumer keys not yet registered
        allow_sharing: permit resource link share arrangements
        default_email: email (or ``@domain``) for users who send none
        id_scope: ``IdScope`` applied to user ids by default
        clock: returns the current time as an aware UTC datetime
    """

    parse_roles = staticmethod(parse_roles)

    def __init__(self, data_connector, handler=None, auto_enable=False,
                 allow_sharing=False, default_email='',
                 id_scope=IdScope.ID_ONLY, clock=utcnow):
        self.data_connector = data_connector
        self.handler = handler or LaunchHandler()
        self.auto_enable = auto_enable
        self.allow_sharing = allow_sharing
        self.default_email = default_email
        self.id_scope = IdScope(id_scope)
        self.clock = clock
        self.constraints = {}

        self.request = None
        self.now = None
        self.consumer = None
        self.resource_link = None
        self.user = None
        self.return_url = None
        self.debug_mode = False
        self.is_ok = False
        self.message = CONNECTION_ERROR_MESSAGE
        self.reason = None
        self.error = None

    def set_parameter_constraint(self, name, required, max_length=None):
        """Check a launch parameter's presence and/or length on launch."""
        name = name.strip()
        if name:
            self.constraints[name] = {'required': required, 'max_length': max_length}

    def get_consumers(self):
        return self.data_connector.tool_consumer_list()

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def execute(self, launch_request):
        """Authenticate a launch and return the outcome to act on."""
        self.request = launch_request
        self.return_url = launch_request.get('launch_presentation_return_url')

        if self.authenticate():
            return self.handler.on_connect(self)

        outcome = self.handler.on_error(self)
        if outcome is None:
            outcome = self._error_outcome()
        return outcome

    def authenticate(self):
        """Run every launch check; return True if the launch is accepted.

        Entity writes are only committed when every check passes.
        """
        params = self.request.parameters
        self.now = self.clock()
        self.debug_mode = params.get('custom_debug', '').lower() == 'true'
        self.is_ok = False
        self.reason = None
        self.error = None

        try:
            self._check_launch_parameters(params)
            self._load_consumer(params['oauth_consumer_key'])
            do_save_consumer = self._touch_last_access()
            self._verify_signature()
            self._check_consumer(params)
            self._check_constraints(params)

            self._load_resource_link(params)
            negotiator = ShareNegotiator(self)
            negotiator.redeem(params.get('custom_share_key'))

            self._populate_resource_link(params)
            self._populate_user(params)
            self._update_result_sourcedid(params)
            if self._update_consumer(params) or do_save_consumer:
                self.consumer.save()

            negotiator.negotiate(params.get('custom_share_key'))
            self.resource_link.save()
            self.data_connector.commit()
        except LTIError as e:
            self.error = e
            self.reason = e.reason
            self.data_connector.rollback()
            logger.info('Launch rejected (%s): %s', type(e).__name__, e.reason)
            return False

        self.is_ok = True
        logger.info('Launch accepted for %s/%s user %s',
                    self.consumer.get_key(), self.resource_link.get_id(),
                    self.user.get_id())
        return True

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_launch_parameters(self, params):
        if 'oauth_consumer_key' not in params:
            raise ProtocolError('Missing oauth_consumer_key parameter.')
        if params.get('lti_message_type') != LAUNCH_MESSAGE_TYPE:
            raise ProtocolError('Invalid or missing lti_message_type parameter.')
        if params.get('lti_version') != LTI_VERSION:
            raise ProtocolError('Invalid or missing lti_version parameter.')
        if not params.get('resource_link_id', '').strip():
            raise ProtocolError('Missing resource_link_id parameter.')

    def _load_consumer(self, key):
        self.consumer = ToolConsumer(key, self.data_connector,
                                     auto_enable=self.auto_enable)
        if self.consumer.created is None and not self.auto_enable:
            raise ConsumerRejected('Invalid consumer key.')
        self.consumer.default_email = self.default_email
        self.consumer.id_scope = self.id_scope

    def _touch_last_access(self):
        """Stamp the consumer's last access; True if the day changed."""
        last = self.consumer.last_access
        self.consumer.last_access = self.now
        return last is None or last.date() != self.now.date()

    def _verify_signature(self):
        server = OAuthServer(OAuthDataStore(self),
                             clock=lambda: self.now.timestamp())
        server.add_signature_method(HmacSha1())
        request = OAuthRequest.from_launch(self.request)
        try:
            server.verify_request(request)
        except ExpiredTimestamp as e:
            raise TimestampExpired(SIGNATURE_FAILED) from e
        except NonceReused as e:
            raise ReplayDetected('Invalid nonce.') from e
        except InvalidSignature as e:
            raise SignatureInvalid(SIGNATURE_FAILED) from e
        except OAuthException as e:
            raise ProtocolError(f'{SIGNATURE_FAILED} ({e})') from e

    def _check_consumer(self, params):
        consumer = self.consumer
        guid = params.get('tool_consumer_instance_guid')
        if consumer.protected:
            if consumer.consumer_guid is not None:
                if not guid or guid != consumer.consumer_guid:
                    raise ConsumerRejected('Request is from an invalid tool consumer.')
            elif guid is None:
                raise ConsumerRejected('A tool consumer GUID must be included in '
                                       'the launch request.')

        if not consumer.enabled:
            raise ConsumerRejected('Tool consumer has not been enabled by the '
                                   'tool provider.')
        if not consumer.is_available(self.now):
            if consumer.enable_from is not None and consumer.enable_from > self.now:
                raise ConsumerRejected('Tool consumer access is not yet available.')
            raise ConsumerRejected('Tool consumer access has expired.')

    def _check_constraints(self, params):
        invalid = []
        for name, constraint in self.constraints.items():
            value = params.get(name)
            if constraint['required'] and (value is None or not value.strip()):
                invalid.append(name)
            elif (constraint['max_length'] is not None and value is not None
                    and len(value.strip()) > constraint['max_length']):
                invalid.append(name)
        if invalid:
            raise ParameterConstraintViolation(invalid)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def _load_resource_link(self, params):
        self.resource_link = ResourceLink(self.consumer,
                                          params['resource_link_id'].strip())

    def _populate_resource_link(self, params):
        link = self.resource_link
        link_id = link.get_id()
        if 'context_id' in params:
            link.lti_context_id = params['context_id'].strip()
        link.lti_resource_id = link_id

        title = params.get('context_title', '').strip()
        link_title = params.get('resource_link_title', '').strip()
        if link_title:
            title = f'{title}: {link_title}' if title else link_title
        link.title = title or f'Course {link.get_id()}'

        for name in LTI_SETTINGS_NAMES:
            link.set_setting(name, params.get(name))
        for name in [n for n in link.get_settings() if n.startswith('custom_')]:
            link.set_setting(name)
        for name, value in params.items():
            if name.startswith('custom_'):
                link.set_setting(name, value)

    def _populate_user(self, params):
        user = User(self.resource_link, params.get('user_id', '').strip())
        user.set_names(params.get('lis_person_name_given', ''),
                       params.get('lis_person_name_family', ''),
                       params.get('lis_person_name_full', ''))
        user.set_email(params.get('lis_person_contact_email_primary', ''),
                       self.default_email)
        if 'roles' in params:
            user.roles = self.parse_roles(params['roles'])
        self.user = user

    def _update_result_sourcedid(self, params):
        sourcedid = params.get('lis_result_sourcedid')
        user = self.user
        if sourcedid is not None:
            if user.lti_result_sourcedid != sourcedid:
                # User rows reference the link, which references the consumer
                if self.resource_link.created is None:
                    if self.consumer.created is None:
                        self.consumer.save()
                    self.resource_link.save()
                user.lti_result_sourcedid = sourcedid
                user.save()
        elif user.lti_result_sourcedid:
            user.delete()

    def _update_consumer(self, params):
        """Copy consumer details from the launch; True if any changed."""
        consumer = self.consumer
        changed = consumer.created is None

        if consumer.lti_version != params['lti_version']:
            consumer.lti_version = params['lti_version']
            changed = True

        name = params.get('tool_consumer_instance_name')
        if name is not None and consumer.consumer_name != name:
            consumer.consumer_name = name
            changed = True

        family = params.get('tool_consumer_info_product_family_code')
        if family is not None:
            version = family
            if 'tool_consumer_info_version' in params:
                version = f"{family}-{params['tool_consumer_info_version']}"
            if consumer.consumer_version != version:
                consumer.consumer_version = version
                changed = True
        elif 'ext_lms' in params and consumer.consumer_version != params['ext_lms']:
            consumer.consumer_version = params['ext_lms']
            changed = True

        guid = params.get('tool_consumer_instance_guid')
        if guid is not None:
            if consumer.consumer_guid is None:
                consumer.consumer_guid = guid
                changed = True
            elif not consumer.protected and consumer.consumer_guid != guid:
                consumer.consumer_guid = guid
                changed = True

        css = params.get('launch_presentation_css_url')
        ext_css = params.get('ext_launch_presentation_css_url')
        if css is not None:
            if consumer.css_path != css:
                consumer.css_path = css
                changed = True
        elif ext_css is not None:
            if consumer.css_path != ext_css:
                consumer.css_path = ext_css
                changed = True
        elif consumer.css_path:
            consumer.css_path = None
            changed = True

        return changed

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def _error_outcome(self):
        if self.return_url:
            separator = '&' if '?' in self.return_url else '?'
            if self.debug_mode and self.reason is not None:
                text = f'Debug error: {self.reason}'
            else:
                text = self.message
            query = urllib.parse.urlencode({'lti_errormsg': text})
            return RedirectTo(f'{self.return_url}{separator}{query}')

        reason = self.reason if self.debug_mode else None
        return ErrorMessage(self.message, reason=reason, error=self.error)
