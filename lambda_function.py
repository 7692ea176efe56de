"""AWS Lambda handler for free/busy calendar synchronization."""
import json
import logging
import os
import time
from datetime import timedelta
from typing import Dict, Any

from credentials.secrets_manager import SecretsManagerCredentialStore
from provider.google_calendar import GoogleCalendarProvider
from reconciler.engine import CalendarSynchronizer
from reconciler.errors import CalendarNotFound, InvalidParameter, MissingParameter
from reconciler.models import DEFAULT_BLOCKED_TITLE, TitleStrategy


ACTIONS = ('sync', 'teardown')


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _days(name: str, default: str) -> timedelta:
    raw = os.environ.get(name, default)
    try:
        return timedelta(days=int(raw))
    except ValueError as e:
        raise InvalidParameter(f"{name} must be a whole number of days, got {raw!r}") from e


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for free/busy synchronization.

    Args:
        event: EventBridge event payload; ``action`` selects ``sync``
            (default) or ``teardown``
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    action = (event or {}).get('action', 'sync')
    start_time = time.time()
    logger.info(f"Lambda execution started (action: {action})")

    if action not in ACTIONS:
        logger.error(f"Unknown action: {action}")
        return _response(400, {
            'message': f"Unknown action '{action}'",
            'allowed_actions': list(ACTIONS)
        })

    try:
        primary_calendar_id = os.environ.get('PRIMARY_CALENDAR_ID')
        remote_calendar_id = os.environ.get('REMOTE_CALENDAR_ID')
        if not primary_calendar_id or not remote_calendar_id:
            raise MissingParameter("PRIMARY_CALENDAR_ID and REMOTE_CALENDAR_ID are required")

        look_back = _days('LOOK_BACK_DAYS', '7')
        look_ahead = _days('LOOK_AHEAD_DAYS', '60')
        timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
        secret_id = os.environ.get('GOOGLE_CREDENTIALS_SECRET', 'freebusy-sync/google-oauth')
        blocked_title = os.environ.get('BLOCKED_TITLE', DEFAULT_BLOCKED_TITLE)

        credentials = SecretsManagerCredentialStore().get_google_credentials(secret_id)
        provider = GoogleCalendarProvider(credentials, timeout=timeout_seconds)
        synchronizer = CalendarSynchronizer.create(
            provider,
            primary_calendar_id,
            remote_calendar_id,
            look_back=look_back,
            look_ahead=look_ahead,
            title_strategy=TitleStrategy(blocked_title=blocked_title)
        )
    except (MissingParameter, InvalidParameter, CalendarNotFound) as e:
        logger.error(f"Invalid configuration: {e}", extra={'error_type': type(e).__name__})
        return _response(400, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__
        })
    except Exception as e:
        logger.error(
            f"Failed to initialize synchronizer: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'message': 'Failed to initialize synchronizer',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(time.time() - start_time, 2)
        })

    try:
        if action == 'teardown':
            result = synchronizer.remove_blocking_events()
        else:
            result = synchronizer.synchronize_calendars()
    except Exception as e:
        # The next scheduled run repairs any partial pass
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'duration_seconds': round(duration, 2), 'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'message': 'Synchronization failed' if action == 'sync' else 'Teardown failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    logger.info(
        f"Lambda execution completed successfully: {result.summary()}",
        extra={'duration_seconds': round(duration, 2)}
    )

    statistics = result.to_dict()
    statistics['duration_seconds'] = round(duration, 2)
    return _response(200, {
        'message': 'Sync completed successfully' if action == 'sync' else 'Teardown completed successfully',
        'action': action,
        'statistics': statistics
    })
