from __future__ import annotations

import logging
import time
import uuid

logger = logging.getLogger("request")

REQUEST_ID_HEADER = "X-Request-ID"

# url kwargs worth carrying into the access log
ROUTE_CONTEXT = {
    "distribution_id": "distributionId",
    "investor_id": "investorId",
    "manager_id": "assetManagerId",
    "spv_id": "spvId",
}


def _route_context(request) -> dict:
    match = getattr(request, "resolver_match", None)
    if match is None:
        return {"route": None}
    context = {"route": match.url_name}
    for kwarg, field in ROUTE_CONTEXT.items():
        value = match.kwargs.get(kwarg)
        if value is not None:
            context[field] = str(value)
    return context


class RequestLogMiddleware:
    """
    One access-log line per request.

    Carries the caller's id and role, the resolved route name and any
    distribution, investor, asset manager or SPV id from the URL, so a
    distribution's approval and payment calls can be traced by id. Requests
    answered with 5xx are logged at ERROR, 409 conflicts at WARNING.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        start = time.time()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.request_id = request_id
        status_code = None
        try:
            response = self.get_response(request)
            status_code = response.status_code
            response[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # JWT auth happens in the DRF view, so request.user may still be anonymous here
            user = getattr(request, "user", None)
            user_id = getattr(user, "id", None)
            extra = {
                "requestId": request_id,
                "method": request.method,
                "path": request.path,
                "userId": str(user_id) if user_id else None,
                "role": getattr(user, "role", None),
                "status": status_code,
                "durationMs": int((time.time() - start) * 1000),
            }
            extra.update(_route_context(request))
            if status_code is None or status_code >= 500:
                level = logging.ERROR
            elif status_code == 409:
                level = logging.WARNING
            else:
                level = logging.INFO
            logger.log(level, "req", extra=extra)
