"""
A user launching the tool from a resource link.

Users are only persisted while they hold a result sourcedid, i.e. while the
consumer expects grades for them.
"""

import enum
import re

ROLE_PREFIX = 'urn:lti:role:ims/lis/'
ID_SCOPE_SEPARATOR = ':'


class IdScope(enum.IntEnum):
    """How much of the consumer/context is prefixed to a user id."""
    ID_ONLY = 0
    GLOBAL = 1
    CONTEXT = 2
    RESOURCE = 3


def parse_roles(roles_string):
    """Split a comma-separated roles list into fully qualified URNs.

    Bare role names such as ``Instructor`` are prefixed with
    ``urn:lti:role:ims/lis/``; anything starting with ``urn:`` is kept as is.
    """
    roles = []
    for role in roles_string.split(','):
        role = role.strip()
        if role:
            if not role.startswith('urn:'):
                role = ROLE_PREFIX + role
            roles.append(role)
    return roles


class User:

    def __init__(self, resource_link, user_id):
        self.resource_link = resource_link
        self.id = user_id
        self.load()

    def _initialise(self):
        self.firstname = ''
        self.lastname = ''
        self.fullname = ''
        self.email = ''
        self.roles = []
        self.groups = []
        self.lti_result_sourcedid = None
        self.created = None
        self.updated = None

    @property
    def data_connector(self):
        return self.resource_link.consumer.data_connector

    def load(self):
        self._initialise()
        return self.data_connector.user_load(self)

    def save(self):
        if not self.lti_result_sourcedid:
            return True
        return self.data_connector.user_save(self)

    def delete(self):
        return self.data_connector.user_delete(self)

    def get_resource_link(self):
        return self.resource_link

    def get_id(self, id_scope=None):
        """Return the user id, qualified according to ``id_scope``.

        With no scope the consumer's default scope is used.
        """
        if id_scope is None:
            id_scope = self.resource_link.consumer.id_scope

        link = self.resource_link
        if id_scope == IdScope.GLOBAL:
            return ID_SCOPE_SEPARATOR.join([link.get_key(), self.id])
        if id_scope == IdScope.CONTEXT:
            parts = [link.get_key()]
            if link.lti_context_id:
                parts.append(link.lti_context_id)
            parts.append(self.id)
            return ID_SCOPE_SEPARATOR.join(parts)
        if id_scope == IdScope.RESOURCE:
            parts = [link.get_key()]
            if link.lti_resource_id:
                parts.append(link.lti_resource_id)
            parts.append(self.id)
            return ID_SCOPE_SEPARATOR.join(parts)
        return self.id

    def set_names(self, firstname, lastname, fullname):
        """Set the user's names, deriving missing parts from the others.

        A full name is split on its first run of whitespace. A missing first
        name becomes ``User`` and a missing last name becomes the user id.
        """
        names = ['', '']
        if fullname:
            self.fullname = fullname.strip()
            split = re.split(r'\s+', self.fullname, maxsplit=1)
            names[:len(split)] = split

        if firstname:
            self.firstname = firstname.strip()
        elif names[0]:
            self.firstname = names[0]
        else:
            self.firstname = 'User'

        if lastname:
            self.lastname = lastname.strip()
        elif names[1]:
            self.lastname = names[1]
        else:
            self.lastname = self.id

        if not self.fullname:
            self.fullname = f'{self.firstname} {self.lastname}'

    def set_email(self, email, default_email=None):
        """Set the email, falling back to ``default_email``.

        A default starting with ``@`` is treated as a domain and appended to
        the user's scoped id.
        """
        if email:
            self.email = email
        elif default_email:
            self.email = default_email
            if self.email.startswith('@'):
                self.email = self.get_id() + self.email
        else:
            self.email = ''

    # ── Roles ────────────────────────────────────────────────────────

    def is_admin(self):
        return (self.has_role('Administrator')
                or self.has_role('urn:lti:sysrole:ims/lis/SysAdmin')
                or self.has_role('urn:lti:sysrole:ims/lis/Administrator')
                or self.has_role('urn:lti:instrole:ims/lis/Administrator'))

    def is_staff(self):
        return (self.has_role('Instructor')
                or self.has_role('ContentDeveloper')
                or self.has_role('TeachingAssistant'))

    def is_learner(self):
        return self.has_role('Learner')

    def has_role(self, role):
        if not role.startswith('urn:'):
            role = ROLE_PREFIX + role
        return role in self.roles

    def __repr__(self):
        return f'<User {self.id} ({self.resource_link.get_id()})>'
