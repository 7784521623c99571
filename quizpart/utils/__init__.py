"""
Utils Package
"""
from quizpart.utils.helpers import (
    CurrentUser,
    now_utc,
    to_local,
    ensure_guest_id,
    get_current_user,
    json_error,
    get_json_body
)

__all__ = [
    'CurrentUser',
    'now_utc',
    'to_local',
    'ensure_guest_id',
    'get_current_user',
    'json_error',
    'get_json_body'
]
