"""Redfish client for BMC communication."""

import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests
from urllib3.exceptions import InsecureRequestWarning

from .config import normalize_endpoint


logger = logging.getLogger(__name__)

SERVICE_ROOT = "/redfish/v1/"
DEFAULT_SESSIONS_PATH = "/redfish/v1/SessionService/Sessions"


class RedfishError(Exception):
    """Raised when a Redfish request or operation fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: requests.Response) -> str:
    """Pull the most useful message out of a Redfish error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() if response.text else ""

    error = body.get("error", {}) if isinstance(body, dict) else {}
    extended = error.get("@Message.ExtendedInfo") or []
    if extended and extended[0].get("Message"):
        return extended[0]["Message"]
    return error.get("message", "")


def _decode(method: str, path: str, response: requests.Response) -> Dict[str, Any]:
    """Parse a response body as JSON."""
    try:
        return response.json()
    except ValueError as e:
        raise RedfishError(
            f"{method} {path} returned invalid JSON: {e}",
            status_code=response.status_code,
        ) from e


class RedfishClient:
    """Client for a Redfish service using basic auth or a login session."""

    def __init__(
        self,
        endpoint: str,
        username: str,
        password: str,
        basic_auth: bool = True,
        verify_ssl: bool = False,
        timeout: float = 30.0,
        host_header: Optional[str] = None,
    ) -> None:
        """
        Initialize Redfish client.

        Args:
            endpoint: BMC URL (scheme defaults to https)
            username: Authentication username
            password: Authentication password
            basic_auth: Use HTTP basic auth instead of a Redfish session
            verify_ssl: Whether to verify SSL certificates
            timeout: Per-request timeout in seconds
            host_header: Original BMC host for the Host header (when tunneling)
        """
        self.endpoint = normalize_endpoint(endpoint)
        self.username = username
        self.password = password
        self.basic_auth = basic_auth
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session_uri: Optional[str] = None
        self.session = requests.Session()
        self.session.verify = verify_ssl
        self.session.headers.update({
            "Accept": "application/json",
            "OData-Version": "4.0",
        })

        if basic_auth:
            self.session.auth = (username, password)

        if host_header:
            self.session.headers.update({"Host": host_header})

        if not verify_ssl:
            requests.packages.urllib3.disable_warnings(InsecureRequestWarning)

    def connect(self) -> Dict[str, Any]:
        """
        Read the service root and, for session auth, log in.

        Returns:
            Service root document

        Raises:
            RedfishError: If the service is unreachable or login fails
        """
        service_root = self.get(SERVICE_ROOT)
        if not self.basic_auth:
            sessions_path = (
                service_root.get("Links", {}).get("Sessions", {}).get("@odata.id")
                or DEFAULT_SESSIONS_PATH
            )
            self._login(sessions_path)
        return service_root

    def _login(self, sessions_path: str) -> None:
        response = self.request(
            "POST",
            sessions_path,
            payload={"UserName": self.username, "Password": self.password},
        )
        token = response.headers.get("X-Auth-Token")
        if not token:
            raise RedfishError("Session login did not return an X-Auth-Token")

        self.session.headers.update({"X-Auth-Token": token})
        location = response.headers.get("Location")
        if location:
            self.session_uri = urlparse(location).path
        logger.info(f"Opened Redfish session {self.session_uri or '(no location)'}")

    def request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        Make a request to the Redfish service.

        Args:
            method: HTTP method
            path: Resource path (e.g., '/redfish/v1/Systems/1')
            payload: JSON body, if any
            headers: Extra request headers

        Returns:
            The HTTP response (2xx only)

        Raises:
            RedfishError: On connection or HTTP errors
        """
        url = f"{self.endpoint}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RedfishError(f"{method} {url} failed: {e}") from e

        if not response.ok:
            detail = _error_detail(response)
            message = f"{method} {path} returned HTTP {response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise RedfishError(message, status_code=response.status_code)

        return response

    def get(self, path: str) -> Dict[str, Any]:
        """GET a resource and return its JSON document."""
        return _decode("GET", path, self.request("GET", path))

    def get_with_etag(self, path: str) -> Tuple[Dict[str, Any], Optional[str]]:
        """
        GET a resource along with its entity tag.

        The ETag response header wins over the document's @odata.etag.
        """
        response = self.request("GET", path)
        data = _decode("GET", path, response)
        etag = response.headers.get("ETag") or data.get("@odata.etag")
        return data, etag

    def patch(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """PATCH a resource."""
        return self.request("PATCH", path, payload=payload, headers=headers)

    def post(self, path: str, payload: Dict[str, Any]) -> requests.Response:
        """POST to a resource or action target."""
        return self.request("POST", path, payload=payload)

    def delete(self, path: str) -> requests.Response:
        """DELETE a resource."""
        return self.request("DELETE", path)

    def logout(self) -> None:
        """Delete the Redfish session, if one was opened."""
        if "X-Auth-Token" not in self.session.headers:
            return

        if self.session_uri:
            try:
                self.delete(self.session_uri)
                logger.info(f"Closed Redfish session {self.session_uri}")
            except RedfishError as e:
                logger.warning(f"Failed to delete session {self.session_uri}: {e}")

        self.session.headers.pop("X-Auth-Token", None)
        self.session_uri = None

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> "RedfishClient":
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.logout()
        self.close()
