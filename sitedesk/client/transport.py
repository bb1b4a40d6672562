"""
HTTP adapter between the client managers and the SiteDesk API.

Every response is turned into a ``Result``: connection problems and 5xx
answers become ``network`` errors, 401/403 ``auth``, 400 ``validation``,
404 ``not_found`` and 409 ``conflict``.
"""
import logging
import os
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from .result import Ok, ErrorKind, fail

logger = logging.getLogger(__name__)

REFRESH_PATH = 'auth/refresh/'

STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTH,
    403: ErrorKind.AUTH,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
}


def error_message(body: Any) -> str:
    """Flatten a DRF error body into one readable line"""
    if isinstance(body, dict):
        for key in ('error', 'detail', 'message'):
            if key in body:
                return error_message(body[key])
        parts = []
        for name, value in body.items():
            text = error_message(value)
            parts.append(text if name == 'non_field_errors' else f"{name}: {text}")
        return '; '.join(parts)
    if isinstance(body, (list, tuple)):
        return ' '.join(error_message(item) for item in body)
    return str(body)


class HttpTransport:
    """requests-based client holding the session's JWT pair"""

    def __init__(self, base_url: str, api_key: str = '', session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.access_token = None
        self.refresh_token = None
        self.session.headers.update({'Accept': 'application/json'})
        if api_key:
            self.session.headers.update({'X-Api-Key': api_key})

    @classmethod
    def from_settings(cls, session: Optional[requests.Session] = None) -> 'HttpTransport':
        return cls(
            base_url=getattr(settings, 'SITEDESK_API_URL', os.getenv('SITEDESK_API_URL', 'http://127.0.0.1:8000/api/v1')),
            api_key=getattr(settings, 'SITEDESK_PUBLIC_API_KEY', os.getenv('SITEDESK_PUBLIC_API_KEY', '')),
            session=session,
            timeout=float(getattr(settings, 'SITEDESK_API_TIMEOUT', os.getenv('SITEDESK_API_TIMEOUT', 10))),
        )

    def set_tokens(self, access: Optional[str], refresh: Optional[str] = None):
        self.access_token = access
        if refresh is not None:
            self.refresh_token = refresh

    def clear_tokens(self):
        self.access_token = None
        self.refresh_token = None

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, json: Optional[Dict] = None, params: Optional[Dict] = None,
                auth: bool = True, allow_refresh: bool = True):
        headers = {}
        if auth and self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'

        try:
            response = self.session.request(
                method, self.url(path), json=json, params=params, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            return fail(ErrorKind.NETWORK, f"Request to {path} timed out")
        except requests.exceptions.RequestException as e:
            return fail(ErrorKind.NETWORK, f"Could not reach the server: {e}")

        if response.status_code == 401 and auth and allow_refresh and self.refresh_token:
            if self.refresh():
                return self.request(method, path, json=json, params=params, auth=auth, allow_refresh=False)

        return self.to_result(response)

    def to_result(self, response: requests.Response):
        if response.status_code == 204 or not response.content:
            body = None
        else:
            try:
                body = response.json()
            except ValueError:
                body = response.text

        if response.status_code < 400:
            return Ok(body)

        status_code = response.status_code
        if status_code >= 500:
            kind = ErrorKind.NETWORK
        else:
            kind = STATUS_KINDS.get(status_code, ErrorKind.VALIDATION)
        message = error_message(body) if body else response.reason or f"HTTP {status_code}"
        return fail(kind, message, status_code, body)

    def refresh(self) -> bool:
        """Exchange the refresh token for a new access token once"""
        result = self.request('POST', REFRESH_PATH, json={'refresh': self.refresh_token}, auth=False)
        if not result:
            logger.info(f"Token refresh rejected: {result.error}")
            self.clear_tokens()
            return False
        self.set_tokens(result.value.get('access'), result.value.get('refresh'))
        return True

    def get(self, path: str, params: Optional[Dict] = None, auth: bool = True):
        return self.request('GET', path, params=params, auth=auth)

    def post(self, path: str, json: Optional[Dict] = None, auth: bool = True):
        return self.request('POST', path, json=json, auth=auth)

    def patch(self, path: str, json: Optional[Dict] = None):
        return self.request('PATCH', path, json=json)

    def delete(self, path: str):
        return self.request('DELETE', path)
