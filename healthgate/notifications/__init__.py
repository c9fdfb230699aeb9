"""Status-change notifications."""

from .webhook import StatusWebhookNotifier
