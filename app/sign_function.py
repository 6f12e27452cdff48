"""
Serverless signing endpoint for direct browser-to-Cloudinary uploads.

Deployed on its own (Netlify/Lambda style ``handler(event, context)``); it
shares no state with the upload server. Expects an optional ``guestName``
query parameter and returns ``{api_key, timestamp, signature, cloud_name,
folder}``.
"""

import json
import logging

from app.config import Settings
from app.errors import ConfigError
from app.signing import signed_upload_params

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def handler(event, context=None):
    try:
        query_params = (event or {}).get("queryStringParameters") or {}
        params = signed_upload_params(Settings(), query_params.get("guestName"))
    except ConfigError as exc:
        logger.error("Signing function not configured: %s", exc)
        return _response(500, {"error": str(exc)})
    except Exception:
        logger.exception("Error in sign function")
        return _response(500, {"error": "Internal server error"})

    return _response(200, params.model_dump())
