"""
HTTP client for the tutoring REST backend.

Every call goes through ``ApiClient.request``:
- the stored access token is attached as a bearer token,
- the ``{success, message, data}`` envelope is parsed into an ApiResponse,
- a 401 caused by an expired access token triggers one refresh through /auth/refresh,
  after which the original request is re-issued exactly once.
"""
from typing import Any, Dict, Optional
import requests
from tutor_portal.config import Settings
from tutor_portal.errors import ApiError, ErrorCode, TransportError
from tutor_portal.logger import logger
from tutor_portal.schemas.authentication_schema import ApiResponse
from tutor_portal.storage import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, Storage

REFRESH_ENDPOINT = "/auth/refresh"


class ApiClient:
    """
    Thin wrapper around a ``requests.Session``.

    Attributes:
        base_url (str): Backend base url, e.g. http://localhost:5000/api
        storage (Storage): Where the tokens are read from (and written to on refresh)
        http: Session used for the calls. Anything with a requests-style ``request``
              method works, which is how the tests plug in a TestClient.
    """

    def __init__(self, settings: Settings, storage: Storage, http: Optional[Any] = None):
        self.base_url = settings.api_base_url.rstrip("/")
        self.timeout = settings.request_timeout_seconds
        self.storage = storage
        self.http = http or requests.Session()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.storage.get(ACCESS_TOKEN_KEY)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _send(self, method: str, endpoint: str, data: Any = None, params: Optional[dict] = None, headers: Optional[dict] = None):
        """Perform one HTTP round trip and return (status_code, decoded json)."""
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = self.http.request(
                method,
                self._url(endpoint),
                json=data,
                params=params or None,
                headers=headers if headers is not None else self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"API Error: {method} {endpoint} failed: {str(e)}")
            raise TransportError(f"Could not reach the server: {str(e)}", e)

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"API Error: {method} {endpoint} returned a non JSON body ({response.status_code})")
            raise TransportError(f"Invalid response from the server ({response.status_code})", e)

        return response.status_code, payload

    def request(self, method: str, endpoint: str, data: Any = None, params: Optional[dict] = None) -> ApiResponse:
        """
        Call an endpoint and return its envelope.

        Args:
        - method (str): HTTP method
        - endpoint (str): Path relative to the base url, e.g. /sessions
        - data: JSON body
        - params (dict): Query parameters, None values are dropped

        Returns:
        - ApiResponse: The parsed envelope

        Raises:
        - TransportError: If the backend could not be reached
        - ApiError: If the backend answered with an error status
        """
        status_code, payload = self._send(method, endpoint, data, params)

        if 200 <= status_code < 300:
            return ApiResponse.model_validate(payload if isinstance(payload, dict) else {"success": True, "data": payload})

        error = ApiError.from_response(status_code, payload)

        # Handle token expiration: refresh once, then retry the original call once
        if error.code == ErrorCode.TOKEN_EXPIRED and endpoint != REFRESH_ENDPOINT:
            if self.refresh_access_token():
                logger.info(f"Access token refreshed, retrying {method} {endpoint}")
                status_code, payload = self._send(method, endpoint, data, params)
                if 200 <= status_code < 300:
                    return ApiResponse.model_validate(payload if isinstance(payload, dict) else {"success": True, "data": payload})
                error = ApiError.from_response(status_code, payload)

        logger.error(f"API Error: {method} {endpoint} -> {status_code} {error.message}")
        raise error

    def refresh_access_token(self) -> bool:
        """
        Exchange the stored refresh token for a new access token.

        Returns:
        - bool: True if a new access token was stored. On failure both tokens are removed,
          unless the stored refresh token is no longer the one that was sent. Then the
          stored tokens are left untouched and False is returned.
        """
        refresh_token = self.storage.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            return False

        try:
            status_code, payload = self._send(
                "POST",
                REFRESH_ENDPOINT,
                {"refreshToken": refresh_token},
                headers={"Content-Type": "application/json"},
            )
        except TransportError:
            return False

        if self.storage.get(REFRESH_TOKEN_KEY) != refresh_token:
            # A login stored a new pair while the refresh was in flight, that pair wins
            logger.info("Stored tokens changed during refresh, keeping them and skipping the retry")
            return False

        if 200 <= status_code < 300:
            data = ApiResponse.model_validate(payload if isinstance(payload, dict) else {})
            access_token = data.unwrap("accessToken")
            if access_token:
                self.storage.set(ACCESS_TOKEN_KEY, access_token)
                # Some deployments rotate the refresh token as well
                rotated = data.unwrap("refreshToken")
                if rotated:
                    self.storage.set(REFRESH_TOKEN_KEY, rotated)
                return True

        # Refresh failed, clear tokens
        logger.info("Token refresh failed, clearing stored tokens")
        self.storage.remove(ACCESS_TOKEN_KEY)
        self.storage.remove(REFRESH_TOKEN_KEY)
        return False

    def get(self, endpoint: str, params: Optional[dict] = None) -> ApiResponse:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Any = None) -> ApiResponse:
        return self.request("POST", endpoint, data=data)

    def put(self, endpoint: str, data: Any = None) -> ApiResponse:
        return self.request("PUT", endpoint, data=data)

    def delete(self, endpoint: str) -> ApiResponse:
        return self.request("DELETE", endpoint)
