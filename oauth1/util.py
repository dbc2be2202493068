"""
Encoding helpers shared by the OAuth request model and signature methods.
"""

import urllib.parse


def urlencode_rfc3986(value):
    """Percent-encode a value (or each element of a list) per RFC 3986.

    Only the unreserved characters ``A-Z a-z 0-9 - . _ ~`` are left as is.
    """
    if isinstance(value, (list, tuple)):
        return [urlencode_rfc3986(v) for v in value]
    if value is None:
        return ''
    return urllib.parse.quote(str(value), safe='~')


def urldecode_rfc3986(value):
    return urllib.parse.unquote(value)


def parse_parameters(query_string):
    """Parse a query string into a dict.

    Names which appear more than once map to a list of their values, in the
    order they were given. Blank values are kept.
    """
    params = {}
    if not query_string:
        return params

    for name, value in urllib.parse.parse_qsl(query_string, keep_blank_values=True):
        if name in params:
            if not isinstance(params[name], list):
                params[name] = [params[name]]
            params[name].append(value)
        else:
            params[name] = value
    return params


def build_http_query(params):
    """Normalize parameters into the OAuth form ``k1=v1&k2=v2``.

    Keys and values are encoded first, then pairs are sorted by encoded key
    and, for repeated keys, by encoded value.
    """
    if not params:
        return ''

    pairs = []
    for name, value in params.items():
        enc_name = urlencode_rfc3986(name)
        if isinstance(value, (list, tuple)):
            for item in value:
                pairs.append((enc_name, urlencode_rfc3986(item)))
        else:
            pairs.append((enc_name, urlencode_rfc3986(value)))

    pairs.sort()
    return '&'.join(f'{k}={v}' for k, v in pairs)


def split_header(header, only_allow_oauth_parameters=True):
    """Split an ``Authorization: OAuth ...`` header into its parameters.

    The ``realm`` parameter is dropped. Values are percent-decoded.
    """
    if header[:6].lower() == 'oauth ':
        header = header[6:]

    params = {}
    for part in header.split(','):
        part = part.strip()
        if '=' not in part:
            continue
        name, value = part.split('=', 1)
        name = name.strip()
        if name == 'realm':
            continue
        if only_allow_oauth_parameters and not name.startswith('oauth'):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
            value = value[1:-1]
        params[urldecode_rfc3986(name)] = urldecode_rfc3986(value)
    return params


def constant_time_equals(expected, actual):
    """Compare two signatures without leaking the first differing position.

    Zero-length inputs and inputs of different lengths fail straight away;
    otherwise every byte is compared before the result is returned.
    """
    if isinstance(expected, str):
        expected = expected.encode('utf-8')
    if isinstance(actual, str):
        actual = actual.encode('utf-8')

    if len(expected) == 0 or len(actual) == 0:
        return False
    if len(expected) != len(actual):
        return False

    result = 0
    for x, y in zip(expected, actual):
        result |= x ^ y
    return result == 0
