"""
Helper Functions
Utility functions used across the application
The host portal authenticates users and forwards them as request headers
"""
from dataclasses import dataclass
from datetime import datetime, timezone
import uuid

from flask import current_app, jsonify, request, session
import pytz


@dataclass
class CurrentUser:
    user_id: str
    display_name: str
    email: str = None
    is_guest: bool = False


def now_utc():
    """Get current UTC timestamp"""
    return datetime.now(timezone.utc)


def to_local(utc_dt, tz_name=None):
    """Convert UTC datetime to the configured display timezone"""
    if not utc_dt:
        return None
    tz = pytz.timezone(tz_name or current_app.config.get('TIMEZONE', 'UTC'))
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=pytz.utc)
    return utc_dt.astimezone(tz)


def ensure_guest_id():
    """Stable per-session id for visitors the host did not identify"""
    if 'guest_id' not in session:
        session['guest_id'] = str(uuid.uuid4())[:8]
    return session['guest_id']


def get_current_user():
    """Current user from the host's identity headers, guest otherwise"""
    config = current_app.config
    user_id = request.headers.get(config.get('USER_ID_HEADER', 'X-User-Id'))
    if user_id:
        return CurrentUser(
            user_id=user_id,
            display_name=request.headers.get(config.get('USER_NAME_HEADER', 'X-User-Name')) or user_id,
            email=request.headers.get(config.get('USER_EMAIL_HEADER', 'X-User-Email')) or None,
        )

    guest_id = ensure_guest_id()
    return CurrentUser(
        user_id=f'guest-{guest_id}',
        display_name=f'Guest-{guest_id}',
        is_guest=True,
    )


def json_error(message, status=400, **extra):
    """Uniform error body for the JSON routes"""
    body = {'success': False, 'error': message}
    body.update(extra)
    return jsonify(body), status


def get_json_body():
    """Request JSON as a dict; empty dict for missing or non-object bodies"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
