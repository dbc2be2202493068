"""
LTI Launch Routes.

Handles the LTI launch POST from the tool consumer, runs the launch through
the tool provider, stores the launch context in the session and redirects
to the success page.
"""

import json
import logging
from functools import wraps

from flask import (Blueprint, request, session, redirect, url_for, make_response,
                   current_app, abort)
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from markupsafe import escape

from lti.launch import LaunchRequest, Proceed, RedirectTo, Output, ErrorMessage
from lti.tool_provider import ToolProvider
from models.connector import SQLAlchemyDataConnector

logger = logging.getLogger(__name__)

lti_bp = Blueprint('lti', __name__)

SESSION_KEYS = ('user_id', 'user_name', 'email', 'roles', 'is_staff',
                'consumer_key', 'resource_link_id', 'resource_link_title')


def _make_launch_token(data):
    """Create a signed, time-limited token carrying session data.

    Used to pass the session through a URL query parameter when
    third-party cookies are blocked (e.g. Chrome incognito inside an
    iframe).
    """
    s = URLSafeTimedSerializer(current_app.config['SECRET_KEY'])
    return s.dumps(data, salt='lti-launch')


def verify_launch_token(token, max_age=None):
    """Verify and decode a launch token.

    Returns the payload dict, or None if invalid / expired.
    """
    if max_age is None:
        max_age = current_app.config['LTI_TOKEN_MAX_AGE']
    s = URLSafeTimedSerializer(current_app.config['SECRET_KEY'])
    try:
        return s.loads(token, salt='lti-launch', max_age=max_age)
    except SignatureExpired:
        logger.info('Expired launch token')
        return None
    except BadSignature:
        logger.warning('Launch token with a bad signature')
        return None


def _client_side_redirect(target_url):
    """Return an HTML page that redirects via JavaScript.

    In cross-site iframes, browsers (especially Chrome) may discard
    Set-Cookie headers on 302 redirects.  By returning a 200 with the
    cookie in the response *and* redirecting via JS, the browser stores
    the cookie before navigating.
    """
    html = f"""<!DOCTYPE html>
<html>
<head><title>Redirecting…</title></head>
<body>
<p>Redirecting…</p>
<script>window.location.replace({json.dumps(target_url)});</script>
<noscript><a href="{escape(target_url)}">Click here to continue</a></noscript>
</body>
</html>"""
    resp = make_response(html, 200)
    resp.headers['Content-Type'] = 'text/html'
    return resp


def public_url(req):
    """Rebuild the URL the consumer signed.

    Behind a reverse proxy (ngrok / tunnels / Heroku) the internal
    req.url is http://127.0.0.1:5000/... but the consumer signed against
    the *public* HTTPS URL.
    """
    scheme = req.headers.get('X-Forwarded-Proto',
                             req.headers.get('X-Forwarded-Scheme', req.scheme))
    scheme = scheme.split(',')[0].strip()
    host = req.headers.get('X-Forwarded-Host', req.headers.get('Host', req.host))
    host = host.split(',')[0].strip()
    # Remove port for standard HTTPS (443) / HTTP (80), consumers leave it
    # out of the signed URL.
    if ':' in host:
        h, p = host.rsplit(':', 1)
        if (scheme == 'https' and p == '443') or (scheme == 'http' and p == '80'):
            host = h

    url = f'{scheme}://{host}{req.path}'
    query = req.query_string.decode('latin-1')
    if query:
        url = f'{url}?{query}'
    return url


def build_launch_request(req):
    """Capture the launch as an immutable LaunchRequest."""
    parameters = list(req.args.items(multi=True)) + list(req.form.items(multi=True))
    return LaunchRequest(req.method, public_url(req), parameters,
                         authorization=req.headers.get('Authorization'))


def _make_provider():
    config = current_app.config
    return ToolProvider(
        SQLAlchemyDataConnector(),
        auto_enable=config['LTI_AUTO_ENABLE'],
        allow_sharing=config['LTI_ALLOW_SHARING'],
        default_email=config['LTI_DEFAULT_EMAIL'],
        id_scope=config['LTI_ID_SCOPE'],
    )


def _session_data(outcome):
    user = outcome.user
    link = outcome.resource_link
    return {
        'user_id': user.get_id(),
        'user_name': user.fullname,
        'email': user.email,
        'roles': user.roles,
        'is_staff': user.is_staff() or user.is_admin(),
        'consumer_key': link.get_key(),
        'resource_link_id': link.get_id(),
        'resource_link_title': link.title,
    }


def _restore_session_from_token():
    """Try to restore the Flask session from the signed ``_lt`` token.

    Returns True if the session was restored, False otherwise.
    """
    token = request.args.get('_lt')
    if not token:
        return False

    data = verify_launch_token(token)
    if data and 'user_id' in data:
        for key in SESSION_KEYS:
            session[key] = data.get(key)
        session.modified = True
        return True
    return False


def require_lti_session(f):
    """Decorator to ensure the user has a valid LTI session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if 'user_id' not in session:
            # Fallback: try to restore from signed URL token
            if not _restore_session_from_token():
                abort(403, description='No active LTI session. Please launch from your LMS.')
        return f(*args, **kwargs)
    return decorated


def _error_response(outcome):
    body = f'<h3>Error: {escape(outcome.text)}</h3>'
    if outcome.reason:
        body += f'<p>{escape(outcome.reason)}</p>'
    return make_response(body, 403)


@lti_bp.route('/lti/launch', methods=['POST'])
def launch():
    """Handle an LTI launch from the tool consumer."""
    provider = _make_provider()
    outcome = provider.execute(build_launch_request(request))

    if isinstance(outcome, Proceed):
        sess_data = _session_data(outcome)
        # Try to set the Flask cookie session (works when cookies aren't blocked)
        for key, value in sess_data.items():
            session[key] = value
        session.modified = True

        # Also create a signed URL token as a fallback for when
        # third-party cookies are blocked (Chrome incognito in iframe).
        token = _make_launch_token(sess_data)
        target = current_app.config['LTI_SUCCESS_URL'] or url_for('lti.home')
        separator = '&' if '?' in target else '?'
        return _client_side_redirect(f'{target}{separator}_lt={token}')

    if isinstance(outcome, RedirectTo):
        if provider.is_ok:
            return _client_side_redirect(outcome.url)
        return redirect(outcome.url)
    if isinstance(outcome, Output):
        return make_response(outcome.html, 200)
    if isinstance(outcome, ErrorMessage):
        return _error_response(outcome)

    logger.error('Unexpected launch outcome %r', outcome)
    abort(500)


@lti_bp.route('/lti/home', methods=['GET'])
@require_lti_session
def home():
    """Landing page showing the launch context."""
    roles = ', '.join(session.get('roles') or []) or 'none'
    return (
        f"<h3>{escape(session.get('resource_link_title') or '')}</h3>"
        f"<p>Signed in as {escape(session.get('user_name') or '')} "
        f"({escape(session['user_id'])})</p>"
        f"<p>Roles: {escape(roles)}</p>"
    ), 200
