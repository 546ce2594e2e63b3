"""AWS Lambda handler for the CabMate Finder travel partner API."""
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Any, Optional

from processor.errors import NetworkError, RecordNotFoundError, ValidationError
from processor.feed_parser import FeedParser
from processor.models import MatchWindow
from scraper.sheets_feed import DEFAULT_FEED_URL, SheetsFeedClient
from service.travel_service import TravelService
from storage.dynamodb_manager import DynamoDBManager
from storage.record_cache import RecordCache

logger = logging.getLogger(__name__)

# Attributes every LogRecord carries; anything else came in via `extra`
_STANDARD_LOG_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

TRUTHY = {'1', 'true', 'yes', 'on'}
API_PREFIX = '/api'


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

        for key, value in vars(record).items():
            if key not in _STANDARD_LOG_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class Settings:
    """Runtime configuration read from environment variables."""
    feed_url: str
    table_name: str
    log_level: str
    timeout_seconds: int
    max_retries: int
    cache_seconds: int
    match_window: str
    strict_row_arity: bool
    partner_limit: int


def load_settings() -> Settings:
    """Read configuration from environment variables."""
    return Settings(
        feed_url=os.environ.get('FEED_URL', DEFAULT_FEED_URL),
        table_name=os.environ.get('TABLE_NAME', ''),
        log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '30')),
        max_retries=int(os.environ.get('FEED_MAX_RETRIES', '3')),
        cache_seconds=int(os.environ.get('CACHE_SECONDS', '30')),
        match_window=os.environ.get('MATCH_WINDOW', 'tight'),
        strict_row_arity=os.environ.get('STRICT_ROW_ARITY', 'true').lower() in TRUTHY,
        partner_limit=int(os.environ.get('PARTNER_LIMIT', '3'))
    )


# Lives as long as the Lambda container, so the record cache survives between invocations
_service: Optional[TravelService] = None


def build_service(settings: Settings) -> TravelService:
    """Wire the feed client, cache and optional durable store together."""
    client = SheetsFeedClient(
        feed_url=settings.feed_url,
        timeout=settings.timeout_seconds,
        max_retries=settings.max_retries
    )
    cache = RecordCache(
        fetch_raw=client.fetch_raw,
        parser=FeedParser(strict=settings.strict_row_arity),
        freshness_seconds=settings.cache_seconds
    )
    repository = DynamoDBManager(table_name=settings.table_name) if settings.table_name else None

    service = TravelService(
        cache=cache,
        repository=repository,
        default_window=MatchWindow.from_preset(settings.match_window),
        partner_limit=settings.partner_limit
    )

    try:
        loaded = service.warm_start()
        if loaded:
            logger.info(f"Loaded {loaded} persisted travel records")
    except Exception as e:
        logger.warning(
            f"Could not load persisted travel records: {str(e)}",
            extra={'error_type': type(e).__name__}
        )

    return service


def get_service(settings: Settings) -> TravelService:
    global _service
    if _service is None:
        _service = build_service(settings)
    return _service


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def _error_response(status_code: int, error: str, exc: Exception) -> Dict[str, Any]:
    return _response(status_code, {
        'success': False,
        'error': error,
        'message': str(exc),
        'error_type': type(exc).__name__
    })


def _request_method(event: Dict[str, Any]) -> Optional[str]:
    method = event.get('httpMethod')
    if not method:
        method = event.get('requestContext', {}).get('http', {}).get('method')
    return method.upper() if method else None


def _request_route(event: Dict[str, Any]) -> str:
    """Request path with any API Gateway stage prefix removed."""
    path = event.get('path') or event.get('rawPath') or ''
    stage = event.get('requestContext', {}).get('stage')
    if stage and stage != '$default' and path.startswith(f'/{stage}/'):
        path = path[len(stage) + 1:]
    return path.rstrip('/') or '/'


def _parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode a JSON request body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    raw_body = event.get('body') or '{}'
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _parse_limit(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid partner limit: {value!r}") from None


def handle_get_records(service: TravelService, event: Dict[str, Any]) -> Dict[str, Any]:
    params = event.get('queryStringParameters') or {}
    snapshot = service.get_records(
        search=params.get('search'),
        date=params.get('date'),
        destination=params.get('destination'),
        unique=str(params.get('unique', '')).lower() in TRUTHY
    )
    return _response(200, {'success': True, **snapshot.to_dict()})


def handle_check_updates(service: TravelService, event: Dict[str, Any]) -> Dict[str, Any]:
    params = event.get('queryStringParameters') or {}
    check = service.check_for_updates(params.get('hash', ''))
    return _response(200, {'success': True, **check.to_dict()})


def handle_find_partners(service: TravelService, event: Dict[str, Any]) -> Dict[str, Any]:
    body = _parse_body(event)
    target_id = body.get('userId') or body.get('id')
    target = None
    if not target_id:
        target = {
            key: body.get(key)
            for key in ('name', 'contact', 'email', 'travelDate', 'departureTime',
                        'place', 'flightTrainNumber')
        }

    match = service.find_partners(
        target_id=target_id,
        target=target,
        window=body.get('window'),
        limit=_parse_limit(body.get('limit'))
    )
    return _response(200, {'success': True, **match.to_dict()})


def handle_filter_options(service: TravelService, event: Dict[str, Any]) -> Dict[str, Any]:
    return _response(200, {'success': True, **service.filter_options()})


def handle_health(service: TravelService, event: Dict[str, Any]) -> Dict[str, Any]:
    return _response(200, service.health())


ROUTES = {
    ('GET', f'{API_PREFIX}/travel-data'): handle_get_records,
    ('GET', f'{API_PREFIX}/check-updates'): handle_check_updates,
    ('POST', f'{API_PREFIX}/find-partners'): handle_find_partners,
    ('GET', f'{API_PREFIX}/filter-options'): handle_filter_options,
    ('GET', f'{API_PREFIX}/health'): handle_health,
}


def handle_api_request(service: TravelService, event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Dispatch an API Gateway proxy request.

    Args:
        service: Travel service
        event: API Gateway proxy event (REST or HTTP API format)

    Returns:
        API Gateway proxy response
    """
    method = _request_method(event)
    route = _request_route(event)

    handler = ROUTES.get((method, route))
    if handler is None:
        if any(known_route == route for _, known_route in ROUTES):
            return _response(405, {'success': False, 'error': 'Method not allowed'})
        return _response(404, {'success': False, 'error': f'Unknown route: {route}'})

    try:
        return handler(service, event)
    except RecordNotFoundError as e:
        return _error_response(404, 'Travel record not found', e)
    except ValidationError as e:
        return _error_response(400, 'Invalid request', e)
    except NetworkError as e:
        logger.error(
            f"Failed to fetch travel data: {str(e)}",
            extra={'error_type': type(e).__name__}
        )
        return _error_response(502, 'Failed to fetch travel data', e)


def handle_scheduled_sync(service: TravelService, start_time: float) -> Dict[str, Any]:
    """Refresh from the feed on an EventBridge schedule."""
    try:
        logger.info("Refreshing travel data from feed")
        result = service.sync(force=True)
    except NetworkError as e:
        logger.error(
            f"Failed to fetch travel feed after retries: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        duration = time.time() - start_time
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Failed to fetch travel feed',
                'error': str(e),
                'error_type': type(e).__name__,
                'note': 'Previous travel records remain cached',
                'duration_seconds': round(duration, 2)
            })
        }

    duration = time.time() - start_time
    logger.info(
        "Scheduled refresh completed successfully",
        extra={
            'duration_seconds': round(duration, 2),
            'records': len(result.records),
            'changed': result.changed
        }
    )
    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Refresh completed successfully',
            'statistics': {
                'records': len(result.records),
                'changed': result.changed,
                'fingerprint': result.fingerprint,
                'duration_seconds': round(duration, 2)
            }
        })
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    API Gateway requests are routed to the travel data operations; any
    other event (an EventBridge schedule) forces a feed refresh.

    Args:
        event: API Gateway proxy event or EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    settings = load_settings()
    setup_logging(settings.log_level)

    start_time = time.time()

    try:
        service = get_service(settings)

        if _request_method(event) is None:
            logger.info(
                "Scheduled execution started",
                extra={'cache_seconds': settings.cache_seconds}
            )
            return handle_scheduled_sync(service, start_time)

        return handle_api_request(service, event)

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'success': False,
            'error': 'Internal error',
            'message': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
