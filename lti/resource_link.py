"""
A resource link: one placement of the tool inside a tool consumer.

Besides its identity the link keeps the settings passed on the last launch
(service URLs, custom parameters) and, when it shares another link, a
pointer to that primary link.
"""

from lti import outcomes, services
from lti.outcomes import EXT_READ, EXT_WRITE, EXT_DELETE
from lti.user import IdScope


class ResourceLink:

    def __init__(self, consumer, resource_link_id):
        self.consumer = consumer
        self.id = resource_link_id
        self._initialise()
        if resource_link_id:
            self.consumer.data_connector.resource_link_load(self)

    def _initialise(self):
        self.lti_context_id = None
        self.lti_resource_id = None
        self.title = ''
        self.settings = {}
        self.group_sets = None
        self.groups = None
        self.primary_consumer_key = None
        self.primary_resource_link_id = None
        # None: no share requested; False: awaiting approval / refused
        self.share_approved = None
        self.created = None
        self.updated = None
        self.settings_changed = False
        self.ext_response = None

    @property
    def data_connector(self):
        return self.consumer.data_connector

    def get_key(self):
        return self.consumer.get_key()

    def get_id(self):
        return self.id

    @property
    def context_id(self):
        """Legacy name for the resource link id."""
        return self.id

    def save(self):
        ok = self.data_connector.resource_link_save(self)
        if ok:
            self.settings_changed = False
        return ok

    def delete(self):
        return self.data_connector.resource_link_delete(self)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, name, default=''):
        return self.settings.get(name, default)

    def set_setting(self, name, value=None):
        """Set a setting; an empty value removes it."""
        if value != self.get_setting(name):
            if value:
                self.settings[name] = value
            else:
                self.settings.pop(name, None)
            self.settings_changed = True

    def get_settings(self):
        return self.settings

    def save_settings(self):
        if self.settings_changed:
            return self.save()
        return True

    def has_outcomes_service(self):
        return bool(self.get_setting('ext_ims_lis_basic_outcome_url')
                    or self.get_setting('lis_outcome_service_url'))

    def has_memberships_service(self):
        return bool(self.get_setting('ext_ims_lis_memberships_url'))

    def has_setting_service(self):
        return bool(self.get_setting('ext_ims_lti_tool_setting_url'))

    # ------------------------------------------------------------------
    # Services offered by the tool consumer
    # ------------------------------------------------------------------

    def do_outcomes_service(self, action, outcome, user=None):
        """Read, write or delete a grade.

        When a user is given, the service details come from the user's own
        resource link, which differs from this one when links are shared.

        Returns:
            The grade for a read (or None), True/False for a write/delete.
        """
        source = self
        sourcedid = outcome.sourcedid
        if user is not None:
            source = user.get_resource_link()
            sourcedid = user.lti_result_sourcedid

        url_lti11 = source.get_setting('lis_outcome_service_url')
        url_ext = source.get_setting('ext_ims_lis_basic_outcome_url')
        client = services.ServiceClient(self.consumer)

        if url_lti11 and self._prefers_lti11(action, outcome):
            response = outcomes.do_lti11_outcome(client, action, url_lti11,
                                                 sourcedid, outcome)
        elif url_ext:
            if action == EXT_WRITE and not outcomes.check_value_type(
                    outcome, self._supported_types()):
                return False
            response = outcomes.do_ext_outcome(client, action, url_ext,
                                               sourcedid, outcome)
        else:
            return None if action == EXT_READ else False

        self.ext_response = client.last_response
        return response

    def _prefers_lti11(self, action, outcome):
        if action == EXT_WRITE:
            return outcomes.check_value_type(outcome, [outcomes.TYPE_DECIMAL])
        return outcome.type == outcomes.TYPE_DECIMAL

    def _supported_types(self):
        supported = self.get_setting('ext_ims_lis_resultvalue_sourcedids',
                                     outcomes.TYPE_DECIMAL)
        return supported.lower().replace(' ', '').split(',')

    def do_memberships_service(self, with_groups=False):
        """Fetch the consumer's membership list for this link.

        Users holding a result sourcedid are saved; previously saved users
        missing from the new list are deleted.

        Returns:
            list of User objects, or None if the request failed.
        """
        old_users = self.get_user_result_sourced_ids(True, IdScope.RESOURCE)
        client = services.ServiceClient(self.consumer)
        url = self.get_setting('ext_ims_lis_memberships_url')
        params = {'id': self.get_setting('ext_ims_lis_memberships_id')}

        response = None
        if with_groups:
            response = client.do_service(
                'basic-lis-readmembershipsforcontextwithgroups', url, params)
        if response is not None:
            self.group_sets = {}
            self.groups = {}
        else:
            response = client.do_service(
                'basic-lis-readmembershipsforcontext', url, params)
        self.ext_response = client.last_response
        if response is None:
            return None

        users = []
        for member in services.parse_members(response.root):
            user = services.user_from_member(self, member)
            users.append(user)
            old_users.pop(user.get_id(IdScope.RESOURCE), None)

        for user in old_users.values():
            user.delete()

        return users

    def do_setting_service(self, action, value=None):
        """Load, save or delete the consumer-side tool setting."""
        message_types = {
            EXT_READ: 'basic-lti-loadsetting',
            EXT_WRITE: 'basic-lti-savesetting',
            EXT_DELETE: 'basic-lti-deletesetting',
        }
        if action not in message_types:
            return False

        if value is None:
            value = ''
        client = services.ServiceClient(self.consumer)
        url = self.get_setting('ext_ims_lti_tool_setting_url')
        params = {
            'id': self.get_setting('ext_ims_lti_tool_setting_id'),
            'setting': value,
        }
        response = client.do_service(message_types[action], url, params)
        self.ext_response = client.last_response
        if response is None:
            return None if action == EXT_READ else False

        if action == EXT_READ:
            return services.parse_setting_value(response.root)
        if action == EXT_WRITE:
            self.set_setting('ext_ims_lti_tool_setting', value)
            self.save_settings()
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user_result_sourced_ids(self, local_only=False, id_scope=None):
        return self.data_connector.resource_link_get_user_result_sourced_ids(
            self, local_only, id_scope)

    def get_shares(self):
        return self.data_connector.resource_link_get_shares(self)

    def __repr__(self):
        return f'<ResourceLink {self.get_key()}/{self.id}>'
