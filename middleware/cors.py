from django.http import HttpResponse

from config.capi_config import get_capi_settings


class CorsMiddleware:
    """Answer preflight requests and add CORS headers for the tracking API."""

    ALLOW_METHODS = "POST, OPTIONS"
    ALLOW_HEADERS = "Content-Type, Authorization"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        capi_settings = get_capi_settings()
        if not request.path.startswith(capi_settings.cors_path_prefix):
            return self.get_response(request)

        if request.method == "OPTIONS":
            response = HttpResponse(status=200)
        else:
            response = self.get_response(request)
        return self._apply_headers(response, capi_settings.cors_origin)

    def _apply_headers(self, response, origin):
        if origin:
            response["Access-Control-Allow-Origin"] = origin
            response["Vary"] = "Origin"
        response["Access-Control-Allow-Methods"] = self.ALLOW_METHODS
        response["Access-Control-Allow-Headers"] = self.ALLOW_HEADERS
        return response
