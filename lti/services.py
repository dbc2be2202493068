"""
Signed calls back to the tool consumer.

Two transports are supported:

* LTI 1.1 POX (Plain Old XML) messages, signed with an ``oauth_body_hash``
  in the ``Authorization`` header;
* the older extension services, sent as signed form posts.

Responses are parsed into small typed objects; callers never walk raw XML.
"""

import base64
import hashlib
import logging
import urllib.parse
import uuid
from collections import namedtuple

import requests
from defusedxml import ElementTree as ET

from oauth1.credentials import Consumer
from oauth1.request import OAuthRequest
from oauth1.signature import HmacSha1
from oauth1.util import parse_parameters
from lti.user import User, parse_roles

logger = logging.getLogger(__name__)

LTI_VERSION = 'LTI-1p0'
POX_NS = 'http://www.imsglobal.org/services/ltiv1p1/xsd/imsoms_v1p0'
DEFAULT_TIMEOUT = 10  # seconds


PoxResponse = namedtuple('PoxResponse', ['code_major', 'description', 'body'])
ExtResponse = namedtuple('ExtResponse', ['code_major', 'root'])
Member = namedtuple('Member', [
    'user_id', 'firstname', 'lastname', 'fullname', 'email', 'roles',
    'lis_result_sourcedid', 'groups',
])
Group = namedtuple('Group', ['id', 'title', 'set_id', 'set_title'])


class ServiceClient:
    """Sends signed requests on behalf of one tool consumer."""

    def __init__(self, tool_consumer, timeout=DEFAULT_TIMEOUT):
        self.consumer = Consumer(tool_consumer.get_key(), tool_consumer.secret)
        self.timeout = timeout
        self.last_request = None
        self.last_response = None

    def do_service(self, message_type, url, params):
        """Post an extension service message.

        Returns:
            ExtResponse, or None if the call failed or did not succeed.
        """
        self.last_response = None
        if not url:
            return None

        # Query parameters are signed but stay on the URL
        query_params = parse_parameters(urllib.parse.urlparse(url).query)

        params = dict(params)
        params['oauth_consumer_key'] = self.consumer.key
        params['lti_version'] = LTI_VERSION
        params['lti_message_type'] = message_type

        request = OAuthRequest.from_consumer_and_token(
            self.consumer, None, 'POST', url, params)
        request.sign_request(HmacSha1(), self.consumer, None)
        data = {k: v for k, v in request.get_parameters().items()
                if k not in query_params}

        text = self._post(url, data=data)
        if text is None:
            return None

        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            logger.warning('Unparseable %s response from %s: %s', message_type, url, e)
            return None

        code_major = _child_text(root, 'statusinfo', 'codemajor')
        if code_major.lower() != 'success':
            logger.warning('%s to %s returned %r', message_type, url, code_major)
            return None
        return ExtResponse(code_major, root)

    def do_lti11_service(self, operation, url, record_xml):
        """Send an LTI 1.1 POX request such as ``replaceResult``.

        Returns:
            PoxResponse, or None if the call failed or did not succeed.
        """
        self.last_response = None
        if not url:
            return None

        body = _build_pox_envelope(operation, record_xml)
        body_hash = base64.b64encode(
            hashlib.sha1(body.encode('utf-8')).digest()
        ).decode('utf-8')

        request = OAuthRequest.from_consumer_and_token(
            self.consumer, None, 'POST', url, {'oauth_body_hash': body_hash})
        request.sign_request(HmacSha1(), self.consumer, None)

        text = self._post(url, data=body.encode('utf-8'), headers={
            'Content-Type': 'application/xml',
            'Authorization': request.to_header(),
        })
        if text is None:
            return None

        try:
            response = parse_pox_response(text)
        except ET.ParseError as e:
            logger.warning('Unparseable %s response from %s: %s', operation, url, e)
            return None

        if response.code_major != 'success':
            logger.warning('%s to %s returned %r: %s', operation, url,
                           response.code_major, response.description)
            return None
        return response

    def _post(self, url, data, headers=None):
        self.last_request = data
        try:
            response = requests.post(url, data=data, headers=headers,
                                     timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning('Service request to %s failed: %s', url, e)
            return None

        if response.status_code != 200:
            logger.warning('Service request to %s returned HTTP %s',
                           url, response.status_code)
            return None
        self.last_response = response.text
        return response.text


def _build_pox_envelope(operation, record_xml):
    message_id = uuid.uuid4().hex
    return f'''<?xml version="1.0" encoding="UTF-8"?>
<imsx_POXEnvelopeRequest xmlns="{POX_NS}">
  <imsx_POXHeader>
    <imsx_POXRequestHeaderInfo>
      <imsx_version>V1.0</imsx_version>
      <imsx_messageIdentifier>{message_id}</imsx_messageIdentifier>
    </imsx_POXRequestHeaderInfo>
  </imsx_POXHeader>
  <imsx_POXBody>
    <{operation}Request>
{record_xml}
    </{operation}Request>
  </imsx_POXBody>
</imsx_POXEnvelopeRequest>'''


# ---------------------------------------------------------------------------
# Response parsers
# ---------------------------------------------------------------------------


def _ns(tag):
    return f'{{{POX_NS}}}{tag}'


def parse_pox_response(text):
    """Parse an ``imsx_POXEnvelopeResponse``.

    Elements are looked up with and without the LTI 1.1 namespace since not
    every consumer declares it.
    """
    root = ET.fromstring(text)

    def find(path):
        element = root.find('/'.join(_ns(p) for p in path))
        if element is None:
            element = root.find('/'.join(path))
        return element

    status = ['imsx_POXHeader', 'imsx_POXResponseHeaderInfo', 'imsx_statusInfo']
    code = find(status + ['imsx_codeMajor'])
    description = find(status + ['imsx_description'])
    body = find(['imsx_POXBody'])
    return PoxResponse(
        code_major=(code.text or '').strip() if code is not None else '',
        description=(description.text or '').strip() if description is not None else '',
        body=body,
    )


def pox_result_score(response, operation):
    """Return the ``textString`` of a ``readResult`` response, or None."""
    if response.body is None:
        return None
    for path in ([_ns(operation + 'Response'), _ns('result'), _ns('resultScore'),
                  _ns('textString')],
                 [operation + 'Response', 'result', 'resultScore', 'textString']):
        element = response.body.find('/'.join(path))
        if element is not None:
            return (element.text or '').strip()
    return None


def _child_text(element, *path):
    found = element.find('/'.join(path))
    if found is None or found.text is None:
        return ''
    return found.text.strip()


def parse_members(root):
    """Extract memberships from a ``readmembershipsforcontext`` response."""
    members = []
    for node in root.findall('memberships/member'):
        groups = []
        for group in node.findall('groups/group'):
            set_node = group.find('set')
            groups.append(Group(
                id=_child_text(group, 'id'),
                title=_child_text(group, 'title'),
                set_id=_child_text(set_node, 'id') if set_node is not None else None,
                set_title=_child_text(set_node, 'title') if set_node is not None else None,
            ))
        sourcedid = node.find('lis_result_sourcedid')
        members.append(Member(
            user_id=_child_text(node, 'user_id'),
            firstname=_child_text(node, 'person_name_given'),
            lastname=_child_text(node, 'person_name_family'),
            fullname=_child_text(node, 'person_name_full'),
            email=_child_text(node, 'person_contact_email_primary'),
            roles=_child_text(node, 'roles'),
            lis_result_sourcedid=(sourcedid.text or '').strip() if sourcedid is not None else None,
            groups=groups,
        ))
    return members


def user_from_member(resource_link, member):
    """Build (and save, if it has a sourcedid) a User from a Member.

    Group details are accumulated onto the resource link.
    """
    user = User(resource_link, member.user_id)
    user.set_names(member.firstname, member.lastname, member.fullname)
    user.set_email(member.email, resource_link.consumer.default_email)
    if member.roles:
        user.roles = parse_roles(member.roles)

    for group in member.groups:
        if resource_link.groups is None:
            resource_link.groups = {}
        if group.set_id is not None:
            if resource_link.group_sets is None:
                resource_link.group_sets = {}
            group_set = resource_link.group_sets.setdefault(group.set_id, {
                'title': group.set_title,
                'groups': [],
                'num_members': 0,
                'num_staff': 0,
                'num_learners': 0,
            })
            group_set['num_members'] += 1
            if user.is_staff():
                group_set['num_staff'] += 1
            if user.is_learner():
                group_set['num_learners'] += 1
            if group.id not in group_set['groups']:
                group_set['groups'].append(group.id)
            resource_link.groups[group.id] = {'title': group.title, 'set': group.set_id}
        else:
            resource_link.groups[group.id] = {'title': group.title}
        user.groups.append(group.id)

    if member.lis_result_sourcedid is not None:
        user.lti_result_sourcedid = member.lis_result_sourcedid
        user.save()
    return user


def parse_setting_value(root):
    return _child_text(root, 'setting', 'value')


def parse_ext_result_value(root):
    """Return the grade from a ``basic-lis-readresult`` response, or None."""
    element = root.find('result/resultscore/textstring')
    if element is None:
        return None
    return (element.text or '').strip()
