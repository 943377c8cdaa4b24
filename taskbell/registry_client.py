"""
Notification registry API client.

Provides the HTTP client for the backend endpoints the notification
pipeline consumes: VAPID public key, push subscription registration,
self-test pushes, subscription counts and private channel authorization.
Handles authentication and maps transport/HTTP failures to exceptions.
"""

from typing import Any, Dict, Optional

import httpx

from taskbell import __version__
from taskbell.exceptions import (
    ApiError,
    AuthenticationError,
    ChannelAuthorizationError,
    RegistryConnectionError,
)
from taskbell.logging_config import get_logger
from taskbell.models import PushSubscriptionInfo

logger = get_logger("registry")


# ============================================================================
# Constants
# ============================================================================

NOTIFICATIONS_PATH = "/api/notifications"
VAPID_KEY_PATH = "/vapid-key"
BROADCAST_AUTH_PATH = "/broadcasting/auth"
DEFAULT_TIMEOUT = 30.0  # seconds
USER_AGENT = f"TaskBell-Client/{__version__}"


# ============================================================================
# NotificationRegistryClient Class
# ============================================================================


class NotificationRegistryClient:
    """
    HTTP client for the remote notification registry.

    Attributes:
        server_url: Backend base URL (without the /api suffix)
        api_token: Bearer token of the logged-in user
    """

    def __init__(
        self,
        server_url: str,
        api_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the registry client.

        Args:
            server_url: Backend base URL (a trailing /api is stripped)
            api_token: Optional bearer token for authenticated requests
            timeout: Request timeout in seconds

        Raises:
            ValueError: If server_url is empty
        """
        if not server_url:
            raise ValueError("server_url is required")

        server_url = server_url.rstrip("/")
        if server_url.endswith("/api"):
            server_url = server_url[: -len("/api")]
        self._server_url = server_url
        self._api_token = api_token

        headers = {
            "User-Agent": USER_AGENT,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self._client = httpx.AsyncClient(
            base_url=self._server_url,
            headers=headers,
            timeout=timeout,
        )

    @property
    def server_url(self) -> str:
        """Get the backend base URL."""
        return self._server_url

    def set_api_token(self, api_token: Optional[str]) -> None:
        """Switch the bearer token (login, logout or user change)."""
        self._api_token = api_token
        if api_token:
            self._client.headers["Authorization"] = f"Bearer {api_token}"
        else:
            self._client.headers.pop("Authorization", None)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "NotificationRegistryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Send a request and translate transport and auth failures.

        Raises:
            RegistryConnectionError: If the server is unreachable, times out
                or drops the connection
            AuthenticationError: On 401/403 responses
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise RegistryConnectionError(f"Connection timed out: {e}")
        except httpx.TransportError as e:
            raise RegistryConnectionError(f"Failed to connect to server: {e}")

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Not authenticated with the notification registry",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json_body(response: httpx.Response, what: str) -> Dict[str, Any]:
        """
        Decode a successful response body as a JSON object.

        Raises:
            ApiError: If the body is not JSON or not an object
        """
        try:
            body = response.json()
        except ValueError:
            raise ApiError(
                f"Invalid {what} response: body is not JSON",
                status_code=response.status_code,
            )
        if not isinstance(body, dict):
            raise ApiError(
                f"Invalid {what} response: expected a JSON object",
                status_code=response.status_code,
            )
        return body

    @staticmethod
    def _error_detail(response: httpx.Response, fallback: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            return body.get("message") or body.get("detail") or fallback
        return fallback

    # -------------------------------------------------------------------------
    # VAPID Key
    # -------------------------------------------------------------------------

    async def get_vapid_public_key(self) -> str:
        """
        Get the server's VAPID public key.

        Returns:
            URL-safe base64 key string (about 87 characters)

        Raises:
            ApiError: If the key cannot be retrieved
            RegistryConnectionError: If connection to server fails
        """
        response = await self._request("GET", VAPID_KEY_PATH)

        if response.status_code != 200:
            raise ApiError(
                f"Failed to fetch VAPID public key (status {response.status_code})",
                status_code=response.status_code,
            )

        key = self._json_body(response, "VAPID key").get("vapid_public_key") or ""
        if not isinstance(key, str):
            raise ApiError(
                "Invalid VAPID key response: key is not a string",
                status_code=response.status_code,
            )
        logger.debug("Fetched VAPID public key", extra={"key_length": len(key)})
        return key

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, subscription: PushSubscriptionInfo) -> Dict[str, Any]:
        """
        Register a push subscription with the registry.

        Args:
            subscription: Endpoint and keys of the local subscription

        Returns:
            Registry response body

        Raises:
            ApiError: If registration fails
            AuthenticationError: If the token is rejected
            RegistryConnectionError: If connection to server fails
        """
        response = await self._request(
            "POST",
            f"{NOTIFICATIONS_PATH}/subscribe",
            json=subscription.to_registry_payload(),
        )

        if response.status_code in (200, 201):
            logger.info(
                "Registered push subscription",
                extra={"endpoint_prefix": subscription.endpoint[:60]},
            )
            try:
                body = response.json()
            except ValueError:
                return {}
            return body if isinstance(body, dict) else {}

        raise ApiError(
            self._error_detail(
                response,
                f"Subscription registration failed with status {response.status_code}",
            ),
            status_code=response.status_code,
        )

    async def unsubscribe(self, endpoint: str) -> None:
        """
        Remove a push subscription from the registry.

        Args:
            endpoint: Push service endpoint URL

        Raises:
            ApiError: If the registry rejects the request
            RegistryConnectionError: If connection to server fails
        """
        response = await self._request(
            "POST",
            f"{NOTIFICATIONS_PATH}/unsubscribe",
            json={"endpoint": endpoint},
        )

        if response.status_code not in (200, 204):
            raise ApiError(
                f"Unsubscribe failed with status {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(
            "Removed push subscription from registry",
            extra={"endpoint_prefix": endpoint[:60]},
        )

    async def send_test(self) -> bool:
        """
        Ask the registry to deliver one self-test push.

        Returns:
            The server's ``success`` flag

        Raises:
            ApiError: If the request fails
            RegistryConnectionError: If connection to server fails
        """
        response = await self._request("POST", f"{NOTIFICATIONS_PATH}/test")

        if response.status_code != 200:
            raise ApiError(
                "Failed to send test notification",
                status_code=response.status_code,
            )
        return bool(self._json_body(response, "test push").get("success"))

    async def get_subscriptions_count(self) -> int:
        """
        Get the number of push subscriptions registered for the user.

        Returns:
            Subscription count

        Raises:
            ApiError: If the request fails
            RegistryConnectionError: If connection to server fails
        """
        response = await self._request(
            "GET", f"{NOTIFICATIONS_PATH}/subscriptions-count"
        )

        if response.status_code != 200:
            raise ApiError(
                f"Failed to get subscriptions count (status {response.status_code})",
                status_code=response.status_code,
            )
        count = self._json_body(response, "subscriptions count").get("subscriptions_count")
        try:
            return int(count or 0)
        except (TypeError, ValueError):
            raise ApiError(
                f"Invalid subscriptions count: {count!r}",
                status_code=response.status_code,
            )

    # -------------------------------------------------------------------------
    # Broadcasting
    # -------------------------------------------------------------------------

    async def authorize_channel(self, socket_id: str, channel_name: str) -> str:
        """
        Authorize a private channel subscription.

        Args:
            socket_id: Socket id assigned by the WebSocket server
            channel_name: Full channel name (e.g. "private-user.42")

        Returns:
            The ``auth`` signature to send with pusher:subscribe

        Raises:
            ChannelAuthorizationError: If the server refuses the channel
            AuthenticationError: If the token is rejected
            RegistryConnectionError: If connection to server fails
        """
        response = await self._request(
            "POST",
            BROADCAST_AUTH_PATH,
            json={"socket_id": socket_id, "channel_name": channel_name},
        )

        if response.status_code != 200:
            raise ChannelAuthorizationError(
                f"Channel authorization failed for {channel_name} "
                f"(status {response.status_code})"
            )

        auth = self._json_body(response, "channel authorization").get("auth")
        if not auth or not isinstance(auth, str):
            raise ChannelAuthorizationError(
                f"Channel authorization for {channel_name} returned no signature"
            )
        return auth
