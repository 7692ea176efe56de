"""Integration tests for Lambda handler."""
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from lambda_function import lambda_handler, setup_logging, JsonFormatter
from reconciler.errors import CalendarNotFound, ProviderFault
from reconciler.models import SyncResult


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'PRIMARY_CALENDAR_ID': 'work@example.com',
        'REMOTE_CALENDAR_ID': 'personal@example.com',
        'LOOK_BACK_DAYS': '7',
        'LOOK_AHEAD_DAYS': '60',
        'GOOGLE_CREDENTIALS_SECRET': 'test-secret',
        'LOG_LEVEL': 'INFO',
        'TIMEOUT_SECONDS': '30'
    }
    with patch.dict(os.environ, env_vars, clear=True):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 256
    context.invoked_function_arn = 'arn:aws:lambda:us-east-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def sync_result():
    started = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
    return SyncResult(
        started_at=started,
        completed_at=started + timedelta(seconds=3),
        expired_removed=1,
        obsolete_removed=2,
        created=3
    )


@pytest.fixture
def components():
    """Patch the credential store, provider and synchronizer."""
    with patch('lambda_function.SecretsManagerCredentialStore') as store_class, \
            patch('lambda_function.GoogleCalendarProvider') as provider_class, \
            patch('lambda_function.CalendarSynchronizer') as synchronizer_class:
        synchronizer = Mock()
        synchronizer_class.create.return_value = synchronizer
        yield Mock(
            store=store_class.return_value,
            provider_class=provider_class,
            synchronizer_class=synchronizer_class,
            synchronizer=synchronizer
        )


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    def test_successful_sync(self, mock_env, mock_context, components, sync_result):
        """Test successful end-to-end sync process."""
        components.synchronizer.synchronize_calendars.return_value = sync_result

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Sync completed successfully'
        assert body['action'] == 'sync'
        assert body['statistics']['created'] == 3
        assert body['statistics']['obsolete_removed'] == 2
        assert body['statistics']['expired_removed'] == 1
        assert 'duration_seconds' in body['statistics']

        components.store.get_google_credentials.assert_called_once_with('test-secret')
        components.provider_class.assert_called_once_with(
            components.store.get_google_credentials.return_value, timeout=30
        )
        args, kwargs = components.synchronizer_class.create.call_args
        assert args[1:] == ('work@example.com', 'personal@example.com')
        assert kwargs['look_back'] == timedelta(days=7)
        assert kwargs['look_ahead'] == timedelta(days=60)
        assert kwargs['title_strategy'].blocked_title == 'Blocked by remote calendar'
        components.synchronizer.remove_blocking_events.assert_not_called()

    def test_teardown_action(self, mock_env, mock_context, components):
        """Test that the teardown action removes blocking events."""
        components.synchronizer.remove_blocking_events.return_value = SyncResult(
            started_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
            removed=4
        )

        response = lambda_handler({'action': 'teardown'}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Teardown completed successfully'
        assert body['statistics']['removed'] == 4
        components.synchronizer.synchronize_calendars.assert_not_called()

    def test_unknown_action(self, mock_env, mock_context, components):
        response = lambda_handler({'action': 'rebuild'}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['allowed_actions'] == ['sync', 'teardown']
        components.synchronizer_class.create.assert_not_called()

    def test_missing_calendar_ids(self, mock_context, components):
        """Test that missing calendar ids are reported as a configuration error."""
        with patch.dict(os.environ, {}, clear=True):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['error_type'] == 'MissingParameter'
        components.store.get_google_credentials.assert_not_called()

    def test_invalid_look_ahead(self, mock_env, mock_context, components):
        with patch.dict(os.environ, {'LOOK_AHEAD_DAYS': 'two months'}):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 400
        assert json.loads(response['body'])['error_type'] == 'InvalidParameter'

    def test_calendar_not_found(self, mock_env, mock_context, components):
        components.synchronizer_class.create.side_effect = CalendarNotFound('work@example.com')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['error_type'] == 'CalendarNotFound'
        assert 'work@example.com' in body['error']

    def test_credentials_failure(self, mock_env, mock_context, components):
        components.store.get_google_credentials.side_effect = Exception('AccessDenied')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Failed to initialize synchronizer'
        assert 'AccessDenied' in body['error']

    def test_sync_failure(self, mock_env, mock_context, components):
        """Test error handling for provider failures during a pass."""
        components.synchronizer.synchronize_calendars.side_effect = ProviderFault(
            'rate limit exceeded', status_code=429
        )

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Synchronization failed'
        assert body['error_type'] == 'ProviderFault'
        assert 'rate limit exceeded' in body['error']
        assert 'duration_seconds' in body

    @patch('lambda_function.setup_logging')
    def test_logging_output(self, mock_setup_logging, mock_env, mock_context, components,
                            sync_result, caplog):
        """Test that logging output is generated correctly."""
        components.synchronizer.synchronize_calendars.return_value = sync_result

        with caplog.at_level(logging.INFO, logger='lambda_function'):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 200
        log_messages = [record.message for record in caplog.records]
        assert any('Lambda execution started' in msg for msg in log_messages)
        assert any('Lambda execution completed successfully' in msg for msg in log_messages)


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_unknown_level_falls_back_to_info(self):
        setup_logging('CHATTY')
        assert logging.getLogger().level == logging.INFO

    def test_json_formatter(self):
        record = logging.LogRecord(
            'reconciler.engine', logging.WARNING, __file__, 1, 'Removed %d events', (2,), None
        )

        payload = json.loads(JsonFormatter().format(record))

        assert payload['level'] == 'WARNING'
        assert payload['message'] == 'Removed 2 events'
        assert payload['logger'] == 'reconciler.engine'
