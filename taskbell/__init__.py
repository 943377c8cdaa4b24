"""
TaskBell - Notification client for the school task manager.

This package provides the real-time notification pipeline used by teachers
and students: push subscription management, a live event feed over the
Reverb (Pusher protocol) WebSocket server, a bounded persisted notification
history and read-side projections for display.

Key modules:
- config: Client configuration management
- registry_client: HTTP client for the notification registry
- subscription_manager: Push permission/subscription lifecycle
- realtime: Private per-user WebSocket channel
- store: Bounded, persisted notification history
- presenter: Unread counts, relative times and navigation routes
- bridge: Out-of-band push delivery into the store
- context: Lifecycle-owned wiring of all of the above
"""

import os
import re
import subprocess
from typing import Optional


def _run_git_command(args: list[str]) -> Optional[str]:
    """Run a Git command and return its output."""
    try:
        result = subprocess.run(
            ['git'] + args,
            capture_output=True,
            text=True,
            check=True,
            timeout=5
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return None


def _get_version_from_git() -> Optional[str]:
    """
    Get version from Git tags.

    Version Format:
    - Tagged releases: "v1.2.3"
    - Development builds: "v1.2.3-dev.5+a1b2c3d"
    """
    describe = _run_git_command(['describe', '--tags', '--long', '--always'])
    if not describe:
        return None

    # "v1.2.3-0-ga1b2c3d" or "v1.2.3-5-ga1b2c3d"
    match = re.match(r'^(.+?)-(\d+)-g([a-f0-9]+)$', describe)
    if match:
        tag, commits_since, commit_hash = match.groups()
        if int(commits_since) == 0:
            return tag
        return f"{tag}-dev.{commits_since}+{commit_hash}"

    # No tags, only a commit hash
    return f"v0.0.0-dev+{describe}"


def _get_version() -> str:
    """
    Get version with priority: TASKBELL_VERSION env var > _version.py > Git tags > fallback.
    """
    env_version = os.environ.get('TASKBELL_VERSION')
    if env_version:
        return env_version

    try:
        from taskbell._version import __version__ as built_version
        return built_version
    except ImportError:
        pass

    git_version = _get_version_from_git()
    if git_version:
        return git_version

    return 'v0.0.0-dev+unknown'


__version__ = _get_version()
