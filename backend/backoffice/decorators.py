# Overview: Route decorators that map domain exceptions to JSON error responses.

from functools import wraps

from flask import jsonify

from .models import ImmutableRecordError
from .services.errors import (
    FilterValidationError,
    NotFoundError,
    StageTransitionError,
    ValidationError,
)


def json_errors(f):
    """
    Translate domain errors raised by services into JSON responses.

    - FilterValidationError -> 400 {"error": "Validation failed", "errors": {...}}
    - ValidationError -> 400
    - NotFoundError -> 404
    - StageTransitionError, ImmutableRecordError -> 409

    Anything else propagates to the app-level handler (generic 500).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except FilterValidationError as exc:
            return jsonify({"error": "Validation failed", "errors": exc.errors}), 400
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        except NotFoundError as exc:
            return jsonify({"error": str(exc)}), 404
        except (StageTransitionError, ImmutableRecordError) as exc:
            return jsonify({"error": str(exc)}), 409

    return decorated_function
