"""
Base Controller Class.
Provides standardized response handling for all controllers.
"""
from typing import Any, Optional, Tuple, Type, TypeVar, Union
from flask import jsonify, request, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from safety_admin.common.errors import RateLimitError, SafetyAdminError, ValidationError
from safety_admin.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)

M = TypeVar('M', bound=BaseModel)

ControllerResponse = Union[Tuple[Response, int], Tuple[Response, int, dict]]


class BaseController:
    """
    Abstract base class for all controllers.
    Enforces standardized response format.
    """

    def handle_response(self, data: Any, status: int = 200) -> Tuple[Response, int]:
        """
        Standardized success response.
        :param data: The payload to return.
        :param status: HTTP status code (default 200).
        :return: Flask JSON response.
        """
        # Payloads that already carry a `success` key are returned unchanged.
        if isinstance(data, dict) and 'success' in data:
            return jsonify(data), status

        return jsonify({'success': True, 'data': data}), status

    def handle_error(self, message: str, status: int = 500) -> Tuple[Response, int]:
        """
        Standardized error response.
        """
        logger.error(f"Controller error ({status}): {message}")
        return jsonify({'success': False, 'error': message}), status

    def handle_exception(self, exc: Exception) -> ControllerResponse:
        """Map typed errors to their HTTP status; anything else is a 500."""
        if isinstance(exc, SafetyAdminError):
            log_level = logger.warning if exc.http_status < 500 else logger.error
            log_level(
                f"Request failed: {exc.message}",
                extra={
                    'error_code': exc.code,
                    'error_category': exc.category.value,
                    'request_status': exc.http_status,
                    'request_path': request.path if request else None,
                }
            )
            if isinstance(exc, RateLimitError):
                return jsonify(exc.to_response()), exc.http_status, {'Retry-After': str(exc.retry_after)}
            return jsonify(exc.to_response()), exc.http_status

        log_error(logger, exc, {'request_path': request.path if request else None})
        return self.handle_error('Internal server error', 500)

    def parse_body(self, model: Type[M], data: Optional[dict] = None) -> M:
        """Validate the JSON body (or ``data``) against a pydantic model."""
        payload = data if data is not None else request.get_json(silent=True)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            return model.model_validate(payload)
        except PydanticValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            field = '.'.join(str(part) for part in first.get('loc', ())) or None
            raise ValidationError(
                first.get('msg', 'Invalid request body'),
                field=field,
                details={'errors': [
                    {'field': '.'.join(str(p) for p in err.get('loc', ())), 'message': err.get('msg')}
                    for err in exc.errors()
                ]},
            ) from exc

    def query_int(self, name: str, default: int, minimum: int = 1, maximum: int = 100) -> int:
        raw = request.args.get(name)
        if raw in (None, ''):
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValidationError(f"'{name}' must be an integer", field=name)
        return max(minimum, min(value, maximum))
