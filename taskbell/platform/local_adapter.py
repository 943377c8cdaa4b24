"""
Desktop push platform backed by local files.

Stores the notification permission and the push subscription under the
client's data directory, prompts on the terminal and prints system
notifications to stdout.

Directory structure:
    <data_dir>/push/
        master.key          # Fernet key (auto-generated)
        permission.json     # {"permission": "granted"}
        subscription.enc    # Encrypted subscription incl. private key
"""

import asyncio
import base64
import json
import os
import secrets
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

import click
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from taskbell.exceptions import PlatformError
from taskbell.logging_config import get_logger
from taskbell.models import PermissionState, PushSubscriptionInfo, SystemNotification
from taskbell.platform.base import PushPlatform

logger = get_logger("push")


MASTER_KEY_FILE = "master.key"
PERMISSION_FILE = "permission.json"
SUBSCRIPTION_FILE = "subscription.enc"

SERVER_KEY_LENGTH = 65  # uncompressed P-256 point
PROMPT_TEXT = "Allow TaskBell to show notifications?"
MAX_DISPLAYED_TAGS = 50


def b64url(data: bytes) -> str:
    """URL-safe base64 without padding, as used by the push protocol."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


async def _confirm_prompt() -> bool:
    return await asyncio.to_thread(click.confirm, PROMPT_TEXT, default=False)


class LocalPushPlatform(PushPlatform):
    """
    Push platform for the desktop client.

    Supported only when a push service URL is configured and the state
    directory can be created.

    Usage:
        >>> platform = LocalPushPlatform(config.push_state_dir, config.push_service_url)
        >>> platform.permission()
        <PermissionState.DEFAULT: 'default'>
    """

    def __init__(
        self,
        state_dir: Path,
        push_service_url: str = "",
        confirm: Optional[Callable[[], Awaitable[bool]]] = None,
        echo: Callable[[str], None] = click.echo,
    ):
        """
        Initialize the desktop platform.

        Args:
            state_dir: Directory for permission and subscription files
            push_service_url: Base URL for generated push endpoints
            confirm: Async callable asking the user (defaults to a terminal prompt)
            echo: Output function for visible notifications
        """
        self.state_dir = Path(state_dir)
        self.push_service_url = push_service_url.rstrip("/")
        self._confirm = confirm or _confirm_prompt
        self._echo = echo
        self._fernet: Optional[Fernet] = None
        self._displayed: "OrderedDict[str, SystemNotification]" = OrderedDict()
        self._supported: Optional[bool] = None

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def _ensure_directories(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.state_dir, 0o700)

    @property
    def master_key_path(self) -> Path:
        return self.state_dir / MASTER_KEY_FILE

    @property
    def permission_path(self) -> Path:
        return self.state_dir / PERMISSION_FILE

    @property
    def subscription_path(self) -> Path:
        return self.state_dir / SUBSCRIPTION_FILE

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._ensure_directories()
            if self.master_key_path.exists():
                key = self.master_key_path.read_bytes()
            else:
                key = Fernet.generate_key()
                self.master_key_path.write_bytes(key)
                os.chmod(self.master_key_path, 0o600)
            self._fernet = Fernet(key)
        return self._fernet

    # -------------------------------------------------------------------------
    # Capability and Permission
    # -------------------------------------------------------------------------

    def is_supported(self) -> bool:
        """Push service configured and state directory (or nearest existing parent) writable."""
        if self._supported is None:
            if not self.push_service_url:
                self._supported = False
            else:
                candidate = self.state_dir
                while not candidate.exists() and candidate != candidate.parent:
                    candidate = candidate.parent
                self._supported = candidate.is_dir() and os.access(candidate, os.W_OK | os.X_OK)
                if not self._supported:
                    logger.warning(f"Push state directory unusable: {self.state_dir}")
        return self._supported

    def permission(self) -> PermissionState:
        if not self.permission_path.exists():
            return PermissionState.DEFAULT
        try:
            data = json.loads(self.permission_path.read_text(encoding="utf-8"))
            return PermissionState(data.get("permission", "default"))
        except (OSError, ValueError, AttributeError):
            logger.warning("Unreadable permission file, treating as default")
            return PermissionState.DEFAULT

    def set_permission(self, permission: PermissionState) -> None:
        """Persist a permission decision (also used to reset it from the CLI)."""
        self._ensure_directories()
        self.permission_path.write_text(
            json.dumps({
                "permission": permission.value,
                "decided_at": datetime.now(timezone.utc).isoformat(),
            }),
            encoding="utf-8",
        )

    async def prompt_permission(self) -> PermissionState:
        allowed = await self._confirm()
        result = PermissionState.GRANTED if allowed else PermissionState.DENIED
        self.set_permission(result)
        logger.info(f"Notification permission {result.value}")
        return result

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    async def register_worker(self) -> None:
        try:
            self._get_fernet()
        except OSError as e:
            raise PlatformError(f"Failed to prepare push state directory: {e}")

    async def get_subscription(self) -> Optional[PushSubscriptionInfo]:
        if not self.subscription_path.exists():
            return None
        try:
            decrypted = self._get_fernet().decrypt(self.subscription_path.read_bytes())
            data = json.loads(decrypted.decode("utf-8"))
            return PushSubscriptionInfo(
                endpoint=data["endpoint"],
                p256dh_key=data["p256dh_key"],
                auth_key=data["auth_key"],
            )
        except (OSError, InvalidToken, ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable push subscription: {e}")
            return None

    async def create_subscription(
        self, application_server_key: bytes
    ) -> PushSubscriptionInfo:
        if (
            len(application_server_key) != SERVER_KEY_LENGTH
            or application_server_key[0] != 0x04
        ):
            raise PlatformError(
                "applicationServerKey must be an uncompressed P-256 public key "
                f"({SERVER_KEY_LENGTH} bytes), got {len(application_server_key)} bytes",
                transient=False,
            )
        if not self.push_service_url:
            raise PlatformError("No push service configured", transient=False)

        private_key = ec.generate_private_key(ec.SECP256R1())
        public_bytes = private_key.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint,
        )
        subscription = PushSubscriptionInfo(
            endpoint=f"{self.push_service_url}/{secrets.token_urlsafe(24)}",
            p256dh_key=b64url(public_bytes),
            auth_key=b64url(secrets.token_bytes(16)),
        )

        private_pem = private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        data = {
            **subscription.model_dump(),
            "private_key": private_pem.decode("ascii"),
            "application_server_key": b64url(application_server_key),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            encrypted = self._get_fernet().encrypt(json.dumps(data).encode("utf-8"))
            self.subscription_path.write_bytes(encrypted)
            os.chmod(self.subscription_path, 0o600)
        except OSError as e:
            raise PlatformError(f"Failed to store push subscription: {e}")

        logger.info("Created local push subscription")
        return subscription

    async def remove_subscription(self) -> bool:
        try:
            self.subscription_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PlatformError(f"Failed to remove push subscription: {e}")
        logger.info("Removed local push subscription")
        return True

    # -------------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------------

    def show_notification(self, notification: SystemNotification) -> None:
        replaced = notification.tag in self._displayed
        self._displayed[notification.tag] = notification
        self._displayed.move_to_end(notification.tag)
        while len(self._displayed) > MAX_DISPLAYED_TAGS:
            self._displayed.popitem(last=False)
        marker = "~" if replaced else "*"
        line = f"{marker} {notification.title}"
        if notification.body:
            line = f"{line}: {notification.body}"
        self._echo(line)
