# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services import tenant_service


def require_restaurant(f):
    """
    Establish tenant context for a route.

    MULTI-TENANT: Reads the restaurant id from the configured header
    (RESTAURANT_HEADER, default X-Restaurant-Id), set by the upstream
    authentication layer, and sets g.restaurant_id.

    Returns 400 if the header is missing or not an integer, and 403 if the
    restaurant does not exist or is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("RESTAURANT_HEADER", "X-Restaurant-Id")
        raw = (request.headers.get(header) or "").strip()

        if not raw:
            return jsonify({"error": "Restaurant context required"}), 400
        if not raw.isdigit():
            return jsonify({"error": "Invalid restaurant id"}), 400

        try:
            restaurant = tenant_service.require_restaurant(int(raw))
        except tenant_service.TenantAccessError:
            current_app.logger.warning(
                "Rejected request for unknown restaurant %s on %s %s",
                raw, request.method, request.path,
            )
            return jsonify({"error": "Access denied"}), 403

        g.restaurant_id = restaurant.id
        return f(*args, **kwargs)

    return decorated_function
