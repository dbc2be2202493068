"""
LTI Basic Outcomes - grade passback to the tool consumer.

Grades go through the LTI 1.1 POX service when the consumer offers it and
the value is (or converts to) a decimal; otherwise the older extension
service is used, which accepts the other value types the consumer lists in
``ext_ims_lis_resultvalue_sourcedids``.
"""

from datetime import datetime, timezone
from xml.sax.saxutils import escape

from lti import services

EXT_READ = 1
EXT_WRITE = 2
EXT_DELETE = 3

TYPE_DECIMAL = 'decimal'
TYPE_PERCENTAGE = 'percentage'
TYPE_RATIO = 'ratio'
TYPE_LETTER_AF = 'letteraf'
TYPE_LETTER_AF_PLUS = 'letterafplus'
TYPE_PASS_FAIL = 'passfail'
TYPE_TEXT = 'freetext'


class Outcome:
    """A grade to read, write or delete for one result sourcedid."""

    def __init__(self, sourcedid=None, value=None):
        self.sourcedid = sourcedid
        self.value = value
        self.language = 'en-US'
        self.date = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
        self.type = TYPE_DECIMAL
        self.status = None
        self.data_source = None

    def __repr__(self):
        return f'<Outcome {self.sourcedid}={self.value!r} ({self.type})>'


def _number(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def check_value_type(outcome, supported_types):
    """Convert the outcome's value to a supported type where possible.

    Percentages and ratios become decimals, letter grades switch between
    the A-F variants or free text, and free text holding a number becomes a
    decimal (or a percentage).

    Returns:
        bool: True if the (possibly converted) type/value is supported.
    """
    value = '' if outcome.value is None else str(outcome.value)
    if outcome.type in supported_types or len(value) == 0:
        return True

    if outcome.type == TYPE_PERCENTAGE:
        if value.endswith('%'):
            value = value[:-1]
        number = _number(value)
        if number is not None and 0 <= number <= 100:
            outcome.value = str(number / 100)
            outcome.type = TYPE_DECIMAL
            return True
        return False

    if outcome.type == TYPE_RATIO:
        parts = value.split('/', 1)
        if len(parts) == 2:
            numerator, denominator = _number(parts[0]), _number(parts[1])
            if (numerator is not None and denominator is not None
                    and numerator >= 0 and denominator > 0):
                outcome.value = str(numerator / denominator)
                outcome.type = TYPE_DECIMAL
                return True
        return False

    if outcome.type == TYPE_LETTER_AF:
        if TYPE_LETTER_AF_PLUS in supported_types:
            outcome.type = TYPE_LETTER_AF_PLUS
            return True
        if TYPE_TEXT in supported_types:
            outcome.type = TYPE_TEXT
            return True
        return False

    if outcome.type == TYPE_LETTER_AF_PLUS:
        if TYPE_LETTER_AF in supported_types and len(value) == 1:
            outcome.type = TYPE_LETTER_AF
            return True
        if TYPE_TEXT in supported_types:
            outcome.type = TYPE_TEXT
            return True
        return False

    if outcome.type == TYPE_TEXT:
        number = _number(value)
        if number is not None and 0 <= number <= 1:
            outcome.type = TYPE_DECIMAL
            return True
        if value.endswith('%'):
            number = _number(value[:-1])
            if number is not None and 0 <= number <= 100:
                if TYPE_PERCENTAGE in supported_types:
                    outcome.type = TYPE_PERCENTAGE
                else:
                    outcome.value = str(number / 100)
                    outcome.type = TYPE_DECIMAL
                return True
        return False

    return False


def _build_result_record(sourcedid, outcome, with_score):
    """Build the resultRecord element of a POX request."""
    score = ''
    if with_score:
        value = '' if outcome.value is None else outcome.value
        score = f'''
        <result>
          <resultScore>
            <language>{escape(outcome.language or '')}</language>
            <textString>{escape(str(value))}</textString>
          </resultScore>
        </result>'''
    return f'''      <resultRecord>
        <sourcedGUID>
          <sourcedId>{escape(sourcedid or '')}</sourcedId>
        </sourcedGUID>{score}
      </resultRecord>'''


def do_lti11_outcome(client, action, url, sourcedid, outcome):
    """Read, replace or delete a result via the LTI 1.1 Outcomes service."""
    operation = {
        EXT_READ: 'readResult',
        EXT_WRITE: 'replaceResult',
        EXT_DELETE: 'deleteResult',
    }[action]

    record = _build_result_record(sourcedid, outcome, action == EXT_WRITE)
    response = client.do_lti11_service(operation, url, record)

    if action == EXT_READ:
        if response is None:
            return None
        score = services.pox_result_score(response, operation)
        if score is not None:
            outcome.value = score
        return score
    return response is not None


def do_ext_outcome(client, action, url, sourcedid, outcome):
    """Read, update or delete a result via the extension outcomes service."""
    message_type = {
        EXT_READ: 'basic-lis-readresult',
        EXT_WRITE: 'basic-lis-updateresult',
        EXT_DELETE: 'basic-lis-deleteresult',
    }[action]

    params = {
        'sourcedid': sourcedid or '',
        'result_resultscore_textstring': '' if outcome.value is None else outcome.value,
    }
    if outcome.language:
        params['result_resultscore_language'] = outcome.language
    if outcome.status:
        params['result_statusofresult'] = outcome.status
    if outcome.date:
        params['result_date'] = outcome.date
    if outcome.type:
        params['result_resultvaluesourcedid'] = outcome.type
    if outcome.data_source:
        params['result_datasource'] = outcome.data_source

    response = client.do_service(message_type, url, params)
    if action == EXT_READ:
        if response is None:
            return None
        return services.parse_ext_result_value(response.root)
    return response is not None
