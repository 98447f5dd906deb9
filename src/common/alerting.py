"""
Alerting for the entitlement service.

Receives the failures the service is not allowed to surface to callers:
- Store reads that failed closed (user was shown a locked tool)
- Purchases that could not be recorded (user paid, access pending)
- Audit anomalies (entitlement written, ledger entry missing)
- Payment tokens the gateway refused to confirm

Supports console logging and Slack webhooks, with duplicate suppression
so a flapping database does not flood the channel.

Usage:
    from src.common.alerting import get_alert_manager, AlertLevel

    manager = get_alert_manager()
    manager.alert(
        level=AlertLevel.ERROR,
        message="Entitlement read failed for ats-checker",
        source=AlertSource.ENTITLEMENT_STORE,
        metadata={"user_id": "u1"},
    )
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from src.common.config import Config

logger = logging.getLogger(__name__)


class AlertLevel(str, Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertSource:
    """Component names used as alert sources."""
    ENTITLEMENT_STORE = "entitlement_store"
    PURCHASE_LEDGER = "purchase_ledger"
    AUDIT_ANOMALY = "audit_anomaly"
    PAYMENT_VERIFICATION = "payment_verification"
    CATALOG = "catalog"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Alert:
    """Represents a single alert."""
    level: AlertLevel
    message: str
    source: str
    timestamp: datetime = field(default_factory=_utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)
    alert_id: str = ""

    def __post_init__(self):
        if not self.alert_id:
            # Same level, source and message -> same id, for suppression
            content = f"{self.level.value}:{self.source}:{self.message}"
            self.alert_id = hashlib.md5(content.encode()).hexdigest()[:12]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class AlertNotifier(ABC):
    """Abstract base class for alert notification channels."""

    @abstractmethod
    def send(self, alert: Alert) -> bool:
        """
        Send an alert notification.

        Returns:
            True if sent successfully, False otherwise
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the notifier is properly configured."""
        pass


class ConsoleNotifier(AlertNotifier):
    """Logs alerts to the application logger."""

    _LEVELS = {
        AlertLevel.INFO: logging.INFO,
        AlertLevel.WARNING: logging.WARNING,
        AlertLevel.ERROR: logging.ERROR,
        AlertLevel.CRITICAL: logging.CRITICAL,
    }

    def __init__(self, logger_instance: Optional[logging.Logger] = None):
        self._logger = logger_instance or logger

    def send(self, alert: Alert) -> bool:
        self._logger.log(
            self._LEVELS.get(alert.level, logging.INFO),
            f"[ALERT:{alert.level.value.upper()}] [{alert.source}] {alert.message}",
            extra={"alert_metadata": alert.metadata}
        )
        return True

    def is_configured(self) -> bool:
        return True


class SlackNotifier(AlertNotifier):
    """Sends alerts to Slack via incoming webhook."""

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 10.0):
        self._webhook_url = webhook_url or Config.SLACK_WEBHOOK_URL
        self._timeout = timeout

    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    def send(self, alert: Alert) -> bool:
        if not self.is_configured():
            logger.debug("Slack notifier not configured, skipping")
            return False

        emoji = {
            AlertLevel.INFO: ":information_source:",
            AlertLevel.WARNING: ":warning:",
            AlertLevel.ERROR: ":x:",
            AlertLevel.CRITICAL: ":rotating_light:",
        }.get(alert.level, ":bell:")

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {alert.level.value.upper()}: {alert.source}",
                    "emoji": True
                }
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": alert.message}
            },
        ]
        if alert.metadata:
            blocks.append({
                "type": "context",
                "elements": [{
                    "type": "mrkdwn",
                    "text": " | ".join(f"*{k}:* {v}" for k, v in alert.metadata.items())
                }]
            })

        try:
            response = requests.post(
                self._webhook_url,
                json={"blocks": blocks},
                timeout=self._timeout
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.error(f"Failed to send Slack alert: {e}")
            return False


class AlertManager:
    """
    Central manager for entitlement alerts.

    Fans alerts out to every configured notifier, suppresses repeats of the
    same alert inside the suppression window, and keeps a bounded history.
    """

    def __init__(
        self,
        suppression_window: float = 300.0,
        max_history: int = 1000,
        notifiers: Optional[List[AlertNotifier]] = None,
        enabled: Optional[bool] = None,
    ):
        """
        Initialize alert manager.

        Args:
            suppression_window: Seconds to suppress duplicate alerts
            max_history: Maximum alerts to keep in history
            notifiers: Notification channels (default: console, plus Slack if configured)
            enabled: Override ENABLE_ALERTING
        """
        self._suppression_window = suppression_window
        self._max_history = max_history
        self._last_sent: Dict[str, datetime] = {}
        self._history: List[Alert] = []
        self._lock = threading.Lock()
        self._enabled = Config.ENABLE_ALERTING if enabled is None else enabled

        if notifiers is not None:
            self._notifiers = list(notifiers)
        else:
            self._notifiers = [ConsoleNotifier()]
            slack_notifier = SlackNotifier()
            if slack_notifier.is_configured():
                self._notifiers.append(slack_notifier)
                logger.info("Slack alerting configured")

    def add_notifier(self, notifier: AlertNotifier) -> None:
        if notifier.is_configured():
            self._notifiers.append(notifier)

    def alert(
        self,
        level: AlertLevel,
        message: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
        force: bool = False,
    ) -> bool:
        """
        Send an alert through all configured channels.

        Args:
            level: Alert severity level
            message: Alert message
            source: Source component (see AlertSource)
            metadata: Additional context data
            force: If True, bypass suppression

        Returns:
            True if at least one notifier sent it, False if suppressed or failed
        """
        if not self._enabled:
            return False

        alert = Alert(level=level, message=message, source=source, metadata=metadata or {})

        with self._lock:
            now = _utcnow()
            last_sent = self._last_sent.get(alert.alert_id)
            if (
                not force
                and last_sent is not None
                and (now - last_sent).total_seconds() < self._suppression_window
            ):
                logger.debug(f"Alert suppressed: {alert.alert_id}")
                return False

            self._last_sent[alert.alert_id] = now
            cutoff = now - timedelta(seconds=self._suppression_window * 2)
            self._last_sent = {k: v for k, v in self._last_sent.items() if v > cutoff}

            self._history.append(alert)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history:]

        success = False
        for notifier in self._notifiers:
            try:
                if notifier.send(alert):
                    success = True
            except Exception as e:
                logger.error(f"Notifier {type(notifier).__name__} failed: {e}")

        return success

    def get_history(
        self,
        level: Optional[AlertLevel] = None,
        source: Optional[str] = None,
        limit: int = 100,
    ) -> List[Alert]:
        """Get alert history, optionally filtered by level and source."""
        with self._lock:
            alerts = self._history.copy()

        if level:
            alerts = [a for a in alerts if a.level == level]
        if source:
            alerts = [a for a in alerts if a.source == source]

        return alerts[-limit:]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._last_sent.clear()

    @property
    def is_enabled(self) -> bool:
        return self._enabled


_global_manager: Optional[AlertManager] = None


def get_alert_manager() -> AlertManager:
    """Get or create the global alert manager."""
    global _global_manager
    if _global_manager is None:
        _global_manager = AlertManager()
    return _global_manager


def reset_alert_manager() -> None:
    """Reset the global alert manager (for testing)."""
    global _global_manager
    if _global_manager:
        _global_manager.clear_history()
    _global_manager = None
