import requests


RETRYABLE_4XX = {408, 425, 429}


class DeliveryError(Exception):
    """Non-2xx answer from a destination API; keeps the decoded body."""

    def __init__(self, status_code: int, body):
        self.status_code = status_code
        self.body = body
        super().__init__(f"{status_code}: {body}")


class TemporaryError(DeliveryError):
    ...


class PermanentError(DeliveryError):
    ...


def _decode(response):
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


def post_json(url, json=None, params=None, headers=None, timeout=10):
    response = requests.post(url, json=json, params=params, headers=headers, timeout=timeout)
    status = response.status_code
    if status >= 500 or status in RETRYABLE_4XX:
        raise TemporaryError(status, _decode(response))
    if not 200 <= status < 300:
        raise PermanentError(status, _decode(response))
    return response.json() if response.content else {}
