"""
Logging Configuration
Console logging with the current portal user on every record
"""
import logging
import logging.config

from flask import has_request_context, request


class UserFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, 'user'):
            record.user = 'SYSTEM'
            if has_request_context():
                record.user = request.headers.get('X-User-Id') or 'guest'
        return True


def build_logging_config(level='INFO'):
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(user)s - %(message)s'
            },
        },
        'filters': {
            'user_filter': {
                '()': UserFilter,
            },
        },
        'handlers': {
            'console': {
                'level': level,
                'class': 'logging.StreamHandler',
                'formatter': 'standard',
                'filters': ['user_filter']
            },
        },
        'loggers': {
            'quizpart': {
                'level': level,
                'propagate': True,
            },
            '': {
                'handlers': ['console'],
                'level': 'WARNING',
            }
        }
    }


def configure_logging(level='INFO'):
    """Apply the logging config once per process"""
    logging.config.dictConfig(build_logging_config(level.upper()))
