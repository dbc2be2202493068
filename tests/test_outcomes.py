"""Tests for services called back on the tool consumer (outcomes, memberships,
settings). HTTP is mocked at ``requests.post``."""

import base64
import hashlib
from unittest.mock import patch, MagicMock

import pytest
import requests

from lti import services
from lti.outcomes import (Outcome, check_value_type, EXT_READ, EXT_WRITE, EXT_DELETE,
                          TYPE_DECIMAL, TYPE_PERCENTAGE, TYPE_RATIO, TYPE_LETTER_AF,
                          TYPE_LETTER_AF_PLUS, TYPE_PASS_FAIL, TYPE_TEXT)
from lti.resource_link import ResourceLink
from lti.user import User
from oauth1.util import split_header

POX_URL = 'https://lms.example/outcomes'
EXT_URL = 'https://lms.example/ext?service=outcomes'


def http_response(text, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


def pox_response(code_major='success', body=''):
    return http_response(f'''<?xml version="1.0" encoding="UTF-8"?>
<imsx_POXEnvelopeResponse xmlns="{services.POX_NS}">
  <imsx_POXHeader>
    <imsx_POXResponseHeaderInfo>
      <imsx_version>V1.0</imsx_version>
      <imsx_statusInfo>
        <imsx_codeMajor>{code_major}</imsx_codeMajor>
        <imsx_severity>status</imsx_severity>
        <imsx_description>done</imsx_description>
      </imsx_statusInfo>
    </imsx_POXResponseHeaderInfo>
  </imsx_POXHeader>
  <imsx_POXBody>{body}</imsx_POXBody>
</imsx_POXEnvelopeResponse>''')


def ext_response(code_major='Success', body=''):
    return http_response(
        f'<message_response><statusinfo><codemajor>{code_major}</codemajor>'
        f'</statusinfo>{body}</message_response>')


@pytest.fixture
def link(add_consumer):
    link = ResourceLink(add_consumer('ck1'), 'rl1')
    link.lti_resource_id = 'rl1'
    link.save()
    return link


@pytest.fixture
def post():
    with patch('lti.services.requests.post') as post:
        yield post


class TestCheckValueType:

    @pytest.mark.parametrize('type_, value, supported, expected', [
        (TYPE_PERCENTAGE, '85%', [TYPE_DECIMAL], (TYPE_DECIMAL, '0.85')),
        (TYPE_PERCENTAGE, '40', [TYPE_DECIMAL], (TYPE_DECIMAL, '0.4')),
        (TYPE_RATIO, '3/4', [TYPE_DECIMAL], (TYPE_DECIMAL, '0.75')),
        (TYPE_LETTER_AF, 'B', [TYPE_LETTER_AF_PLUS], (TYPE_LETTER_AF_PLUS, 'B')),
        (TYPE_LETTER_AF, 'B', [TYPE_TEXT], (TYPE_TEXT, 'B')),
        (TYPE_LETTER_AF_PLUS, 'C', [TYPE_LETTER_AF], (TYPE_LETTER_AF, 'C')),
        (TYPE_TEXT, '0.5', [TYPE_DECIMAL], (TYPE_DECIMAL, '0.5')),
        (TYPE_TEXT, '50%', [TYPE_DECIMAL], (TYPE_DECIMAL, '0.5')),
        (TYPE_TEXT, '50%', [TYPE_DECIMAL, TYPE_PERCENTAGE], (TYPE_PERCENTAGE, '50%')),
        (TYPE_PASS_FAIL, 'pass', [TYPE_PASS_FAIL], (TYPE_PASS_FAIL, 'pass')),
    ])
    def test_converted(self, type_, value, supported, expected):
        outcome = Outcome('sid', value)
        outcome.type = type_
        assert check_value_type(outcome, supported) is True
        assert (outcome.type, outcome.value) == expected

    @pytest.mark.parametrize('type_, value', [
        (TYPE_PERCENTAGE, '120%'),
        (TYPE_RATIO, '3/0'),
        (TYPE_RATIO, 'three'),
        (TYPE_LETTER_AF_PLUS, 'B+'),
        (TYPE_TEXT, 'good'),
        (TYPE_PASS_FAIL, 'pass'),
    ])
    def test_unsupported(self, type_, value):
        outcome = Outcome('sid', value)
        outcome.type = type_
        assert check_value_type(outcome, [TYPE_DECIMAL]) is False

    def test_empty_value_always_accepted(self):
        outcome = Outcome('sid', '')
        outcome.type = TYPE_PASS_FAIL
        assert check_value_type(outcome, [TYPE_DECIMAL]) is True


class TestLti11Outcomes:

    def test_write_sends_signed_pox(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.return_value = pox_response()

        assert link.do_outcomes_service(EXT_WRITE, Outcome('sid-1', '0.8')) is True

        args, kwargs = post.call_args
        assert args == (POX_URL,)
        body = kwargs['data']
        assert b'<replaceResultRequest>' in body
        assert b'<sourcedId>sid-1</sourcedId>' in body
        assert b'<textString>0.8</textString>' in body
        assert kwargs['headers']['Content-Type'] == 'application/xml'

        oauth = split_header(kwargs['headers']['Authorization'])
        assert oauth['oauth_consumer_key'] == 'ck1'
        assert oauth['oauth_body_hash'] == base64.b64encode(
            hashlib.sha1(body).digest()).decode()
        assert 'oauth_signature' in oauth

    def test_percentage_is_converted_for_lti11(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.return_value = pox_response()
        outcome = Outcome('sid-1', '75%')
        outcome.type = TYPE_PERCENTAGE

        assert link.do_outcomes_service(EXT_WRITE, outcome) is True
        assert b'<textString>0.75</textString>' in post.call_args.kwargs['data']

    def test_read(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.return_value = pox_response(body=(
            '<readResultResponse><result><resultScore><language>en</language>'
            '<textString> 0.65 </textString></resultScore></result></readResultResponse>'))

        outcome = Outcome('sid-1')
        assert link.do_outcomes_service(EXT_READ, outcome) == '0.65'
        assert outcome.value == '0.65'
        assert b'<readResultRequest>' in post.call_args.kwargs['data']

    def test_delete(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.return_value = pox_response()
        assert link.do_outcomes_service(EXT_DELETE, Outcome('sid-1')) is True
        assert b'<textString>' not in post.call_args.kwargs['data']

    @pytest.mark.parametrize('response', [
        pox_response('failure'),
        http_response('denied', status_code=401),
        http_response('<not xml'),
    ])
    def test_failed_write(self, link, post, response):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.return_value = response
        assert link.do_outcomes_service(EXT_WRITE, Outcome('sid-1', '0.8')) is False

    def test_connection_error(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.side_effect = requests.ConnectionError('refused')
        assert link.do_outcomes_service(EXT_READ, Outcome('sid-1')) is None

    def test_sourcedid_taken_from_user(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        post.return_value = pox_response()
        user = User(link, 'u1')
        user.lti_result_sourcedid = 'from-user'

        link.do_outcomes_service(EXT_WRITE, Outcome('ignored', '1'), user=user)
        assert b'<sourcedId>from-user</sourcedId>' in post.call_args.kwargs['data']

    def test_no_service(self, link, post):
        assert link.has_outcomes_service() is False
        assert link.do_outcomes_service(EXT_WRITE, Outcome('sid-1', '1')) is False
        assert link.do_outcomes_service(EXT_READ, Outcome('sid-1')) is None
        post.assert_not_called()


class TestExtensionOutcomes:

    def test_letter_grade_uses_extension_service(self, link, post):
        link.set_setting('lis_outcome_service_url', POX_URL)
        link.set_setting('ext_ims_lis_basic_outcome_url', EXT_URL)
        link.set_setting('ext_ims_lis_resultvalue_sourcedids', 'decimal, letterAF')
        post.return_value = ext_response()
        outcome = Outcome('sid-1', 'B')
        outcome.type = TYPE_LETTER_AF

        assert link.do_outcomes_service(EXT_WRITE, outcome) is True

        args, kwargs = post.call_args
        assert args == (EXT_URL,)
        data = kwargs['data']
        assert data['lti_message_type'] == 'basic-lis-updateresult'
        assert data['sourcedid'] == 'sid-1'
        assert data['result_resultscore_textstring'] == 'B'
        assert data['result_resultvaluesourcedid'] == TYPE_LETTER_AF
        assert 'oauth_signature' in data
        # Query parameters are signed but not repeated in the body
        assert 'service' not in data

    def test_unsupported_type_not_sent(self, link, post):
        link.set_setting('ext_ims_lis_basic_outcome_url', EXT_URL)
        outcome = Outcome('sid-1', 'pass')
        outcome.type = TYPE_PASS_FAIL
        assert link.do_outcomes_service(EXT_WRITE, outcome) is False
        post.assert_not_called()

    def test_read(self, link, post):
        link.set_setting('ext_ims_lis_basic_outcome_url', EXT_URL)
        post.return_value = ext_response(body=(
            '<result><resultscore><textstring>0.9</textstring></resultscore></result>'))
        assert link.do_outcomes_service(EXT_READ, Outcome('sid-1')) == '0.9'
        assert post.call_args.kwargs['data']['lti_message_type'] == 'basic-lis-readresult'

    def test_failure_code(self, link, post):
        link.set_setting('ext_ims_lis_basic_outcome_url', EXT_URL)
        post.return_value = ext_response('Failure')
        assert link.do_outcomes_service(EXT_DELETE, Outcome('sid-1')) is False


MEMBERS = '''<memberships>
  <member>
    <user_id>u1</user_id>
    <roles>Learner</roles>
    <person_name_full>Ada Lovelace</person_name_full>
    <person_contact_email_primary>ada@example.com</person_contact_email_primary>
    <lis_result_sourcedid>sid-1</lis_result_sourcedid>
    <groups>
      <group><id>g1</id><title>Group 1</title><set><id>s1</id><title>Set 1</title></set></group>
      <group><id>g2</id><title>Loose</title></group>
    </groups>
  </member>
  <member>
    <user_id>u2</user_id>
    <roles>Instructor</roles>
    <person_name_given>Grace</person_name_given>
    <person_name_family>Hopper</person_name_family>
  </member>
</memberships>'''


class TestServiceAvailability:

    @pytest.mark.parametrize('setting, check', [
        ('lis_outcome_service_url', 'has_outcomes_service'),
        ('ext_ims_lis_basic_outcome_url', 'has_outcomes_service'),
        ('ext_ims_lis_memberships_url', 'has_memberships_service'),
        ('ext_ims_lti_tool_setting_url', 'has_setting_service'),
    ])
    def test_offered_when_url_set(self, link, setting, check):
        assert getattr(link, check)() is False
        link.set_setting(setting, 'https://lms.example/svc')
        assert getattr(link, check)() is True
        link.set_setting(setting, '')
        assert getattr(link, check)() is False


class TestMemberships:

    @pytest.fixture
    def link(self, link):
        link.set_setting('ext_ims_lis_memberships_url', 'https://lms.example/members')
        link.set_setting('ext_ims_lis_memberships_id', 'mem-1')
        link.save()
        return link

    def test_members_with_groups(self, link, post):
        post.return_value = ext_response(body=MEMBERS)
        users = link.do_memberships_service(with_groups=True)

        assert [u.id for u in users] == ['u1', 'u2']
        ada, grace = users
        assert ada.fullname == 'Ada Lovelace'
        assert ada.email == 'ada@example.com'
        assert ada.groups == ['g1', 'g2']
        assert grace.is_staff()
        assert (grace.firstname, grace.lastname) == ('Grace', 'Hopper')

        assert link.group_sets == {'s1': {'title': 'Set 1', 'groups': ['g1'],
                                          'num_members': 1, 'num_staff': 0,
                                          'num_learners': 1}}
        assert link.groups == {'g1': {'title': 'Group 1', 'set': 's1'},
                               'g2': {'title': 'Loose'}}

        data = post.call_args.kwargs['data']
        assert data['lti_message_type'] == 'basic-lis-readmembershipsforcontextwithgroups'
        assert data['id'] == 'mem-1'

    def test_sourcedids_saved_and_stale_users_removed(self, link, post):
        stale = User(link, 'gone')
        stale.lti_result_sourcedid = 'sid-old'
        stale.save()
        post.return_value = ext_response(body=MEMBERS)

        link.do_memberships_service()

        assert User(link, 'u1').lti_result_sourcedid == 'sid-1'
        assert User(link, 'u2').created is None
        assert User(link, 'gone').lti_result_sourcedid is None

    def test_falls_back_without_groups(self, link, post):
        post.side_effect = [http_response('', status_code=404), ext_response(body=MEMBERS)]
        users = link.do_memberships_service(with_groups=True)
        assert len(users) == 2
        assert post.call_args.kwargs['data']['lti_message_type'] == (
            'basic-lis-readmembershipsforcontext')

    def test_failure(self, link, post):
        post.return_value = ext_response('Failure')
        assert link.do_memberships_service() is None


class TestSettingService:

    @pytest.fixture
    def link(self, link):
        link.set_setting('ext_ims_lti_tool_setting_url', 'https://lms.example/setting')
        link.set_setting('ext_ims_lti_tool_setting_id', 'set-1')
        link.save()
        return link

    def test_read(self, link, post):
        post.return_value = ext_response(body='<setting><value> stored </value></setting>')
        assert link.do_setting_service(EXT_READ) == 'stored'
        data = post.call_args.kwargs['data']
        assert data['lti_message_type'] == 'basic-lti-loadsetting'
        assert data['id'] == 'set-1'

    def test_write_keeps_local_copy(self, link, post, connector):
        post.return_value = ext_response()
        assert link.do_setting_service(EXT_WRITE, 'new value') is True
        assert post.call_args.kwargs['data']['setting'] == 'new value'
        assert ResourceLink(link.consumer, 'rl1').get_setting(
            'ext_ims_lti_tool_setting') == 'new value'

    def test_failed_read(self, link, post):
        post.return_value = http_response('', status_code=500)
        assert link.do_setting_service(EXT_READ) is None

    def test_unknown_action(self, link, post):
        assert link.do_setting_service(99) is False
        post.assert_not_called()
