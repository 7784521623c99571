"""
HTTP Trigger Service
Optional outbound notification when a submitted attempt reaches
the configured score threshold
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

TRIGGER_REASON = 'HIGH_SCORE_ACHIEVED'


@dataclass
class TriggerConfig:
    enabled: bool
    url: str
    method: str = 'POST'
    threshold: int = 80
    timeout: int = 30
    include_user_data: bool = True
    custom_headers: Optional[str] = None

    @classmethod
    def from_widget(cls, widget, default_timeout=30):
        return cls(
            enabled=bool(widget.webhook_enabled),
            url=widget.webhook_url or '',
            method=widget.webhook_method or 'POST',
            threshold=widget.webhook_threshold if widget.webhook_threshold is not None else 80,
            timeout=widget.webhook_timeout or default_timeout,
            include_user_data=bool(widget.webhook_include_user_data),
            custom_headers=widget.webhook_headers,
        )


@dataclass
class TriggerResponse:
    success: bool
    sent: bool = False
    status: Optional[int] = None
    status_text: Optional[str] = None
    response_text: Optional[str] = None


def is_valid_url(url):
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def parse_custom_headers(raw):
    """Operator supplied JSON object of headers; anything else is ignored"""
    if not raw or not raw.strip():
        return {}
    try:
        headers = json.loads(raw)
    except ValueError as exc:
        logger.warning('Failed to parse custom headers, using defaults: %s', exc)
        return {}
    if not isinstance(headers, dict):
        logger.warning('Custom headers must be a JSON object, using defaults')
        return {}
    parsed = {}
    for key, value in headers.items():
        key, value = str(key), str(value)
        if not (key.isascii() and value.isascii()):
            logger.warning('Dropping custom header %r, header names and values must be ASCII', key)
            continue
        parsed[key] = value
    return parsed


def build_payload(result, config, site_url):
    """Summary sent to the trigger endpoint"""
    payload = {
        'userId': result['UserId'],
        'success': True,
        'scorePercentage': result['ScorePercentage'],
        'quizTitle': result['QuizTitle'],
        'resultDate': result['ResultDate'],
        'siteUrl': site_url,
        'triggerReason': TRIGGER_REASON,
        'threshold': config.threshold,
    }
    if config.include_user_data:
        payload['userName'] = result.get('UserName')
        payload['userEmail'] = result.get('UserEmail')
    return payload


class HttpTriggerService:
    """Sends the high score trigger"""

    def __init__(self, site_url, client=None):
        self.site_url = site_url
        self.client = client

    @staticmethod
    def should_fire(config, score_percentage):
        return bool(config.enabled) and score_percentage >= config.threshold

    def send_high_score_trigger(self, result, config):
        """
        Fire the trigger if enabled and the score meets the threshold.
        Never raises; the outcome is logged and returned.
        """
        score = result['ScorePercentage']
        if not config.enabled:
            return TriggerResponse(success=False, status_text='Trigger disabled')
        if score < config.threshold:
            logger.info('Score %s%% is below threshold %s%%. HTTP trigger not sent.', score, config.threshold)
            return TriggerResponse(success=False, status_text='Below threshold')

        logger.info('Score %s%% meets threshold %s%%. Sending HTTP trigger...', score, config.threshold)
        try:
            payload = build_payload(result, config, self.site_url)
            response = self._send(config, payload)
        except Exception as exc:
            logger.exception('Unexpected error sending HTTP trigger')
            return TriggerResponse(success=False, status_text=f'Error: {exc}')
        if response.success:
            logger.info('HTTP trigger sent successfully (%s)', response.status)
        else:
            logger.error('Failed to send HTTP trigger: %s', response.status_text)
        return response

    def _send(self, config, payload):
        if not config.url or not is_valid_url(config.url):
            logger.error('Invalid HTTP trigger URL: %r', config.url)
            return TriggerResponse(success=False, status_text='Invalid URL')

        headers = {'Content-Type': 'application/json'}
        headers.update(parse_custom_headers(config.custom_headers))

        method = (config.method or 'POST').upper()
        client = self.client or httpx.Client()
        try:
            response = client.request(
                method,
                config.url,
                content=json.dumps(payload),
                headers=headers,
                timeout=config.timeout,
            )
        except httpx.TimeoutException:
            message = f'HTTP trigger request timed out after {config.timeout} seconds'
            return TriggerResponse(success=False, sent=True, status_text=message)
        except httpx.HTTPError as exc:
            return TriggerResponse(success=False, sent=True, status_text=str(exc))
        finally:
            if self.client is None:
                client.close()

        ok = 200 <= response.status_code < 300
        if not ok:
            logger.error('Response body: %s', response.text)
        return TriggerResponse(
            success=ok,
            sent=True,
            status=response.status_code,
            status_text=response.reason_phrase,
            response_text=response.text,
        )
