"""
TaskBell CLI - Command-line interface for the notification client.

Commands:
- start: Run the client daemon (realtime feed and push inbox)
- notifications: Browse and manage the notification history
- push: Manage the push notification subscription
- config: Manage the server address and user session
"""
