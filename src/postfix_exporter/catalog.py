"""
Static catalog of the exported metric families and of the log line patterns feeding the
persisted counters.

A log line may satisfy several rules. A reject line blocked by an RBL increments both
``messages_rejected`` and ``reject_rbl``.
"""
import re
from enum import Enum
from typing import Dict, Mapping, Tuple

import attrs

__all__ = [
    "CounterKey",
    "PatternRule",
    "PATTERN_CATALOG",
    "MetricFamily",
    "FAMILIES",
    "COUNTER_SERIES",
]


class CounterKey(Enum):
    """Persisted counter series. The value is the key used in the state file."""

    MESSAGES_RECEIVED = "messages_received"
    MESSAGES_DELIVERED = "messages_delivered"
    MESSAGES_DEFERRED = "messages_deferred"
    MESSAGES_BOUNCED = "messages_bounced"
    MESSAGES_REJECTED = "messages_rejected"
    SMTPD_CONNECTIONS = "smtpd_connections"
    SMTPD_NOQUEUE = "smtpd_noqueue"
    SMTPD_SASL_AUTHENTICATED = "smtpd_sasl_authenticated"
    SMTPD_SASL_FAILED = "smtpd_sasl_failed"
    REJECT_RBL = "reject_rbl"
    REJECT_HELO = "reject_helo"
    REJECT_SENDER = "reject_sender"
    REJECT_RECIPIENT = "reject_recipient"
    REJECT_CLIENT = "reject_client"
    REJECT_UNKNOWN_USER = "reject_unknown_user"
    SMTP_DELIVERY = "smtp_delivery"
    LMTP_DELIVERY = "lmtp_delivery"
    VIRTUAL_DELIVERY = "virtual_delivery"
    PIPE_DELIVERY = "pipe_delivery"


@attrs.frozen
class PatternRule:
    pattern: re.Pattern = attrs.field(converter=re.compile)
    targets: Tuple[CounterKey, ...] = attrs.field(converter=tuple)

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


def _rule(pattern: str, *targets: CounterKey) -> PatternRule:
    return PatternRule(pattern=pattern, targets=targets)


_REJECT = r"postfix/smtpd.*reject:"

PATTERN_CATALOG: Tuple[PatternRule, ...] = (
    _rule(r"postfix/smtpd.*client=", CounterKey.MESSAGES_RECEIVED),
    _rule(r"postfix/.*status=sent", CounterKey.MESSAGES_DELIVERED),
    _rule(r"postfix/.*status=deferred", CounterKey.MESSAGES_DEFERRED),
    _rule(r"postfix/.*status=bounced", CounterKey.MESSAGES_BOUNCED),
    _rule(_REJECT, CounterKey.MESSAGES_REJECTED),
    # "disconnect from" closes a session, it does not open one
    _rule(r"postfix/smtpd.*(?<!dis)connect from", CounterKey.SMTPD_CONNECTIONS),
    _rule(r"postfix/smtpd.*NOQUEUE:", CounterKey.SMTPD_NOQUEUE),
    _rule(r"postfix/smtpd.*sasl_method=", CounterKey.SMTPD_SASL_AUTHENTICATED),
    _rule(r"postfix/smtpd.*SASL.*authentication failed", CounterKey.SMTPD_SASL_FAILED),
    _rule(_REJECT + r".*(?:RBL|blocked using)", CounterKey.REJECT_RBL),
    _rule(_REJECT + r".*(?:HELO|Helo command rejected)", CounterKey.REJECT_HELO),
    _rule(_REJECT + r".*Sender address rejected", CounterKey.REJECT_SENDER),
    _rule(_REJECT + r".*Recipient address rejected", CounterKey.REJECT_RECIPIENT),
    _rule(_REJECT + r".*Client host rejected", CounterKey.REJECT_CLIENT),
    _rule(_REJECT + r".*User unknown", CounterKey.REJECT_UNKNOWN_USER),
    _rule(r"postfix/smtp\b.*status=sent", CounterKey.SMTP_DELIVERY),
    _rule(r"postfix/lmtp\b.*status=sent", CounterKey.LMTP_DELIVERY),
    _rule(r"postfix/virtual\b.*status=sent", CounterKey.VIRTUAL_DELIVERY),
    _rule(r"postfix/pipe\b.*status=sent", CounterKey.PIPE_DELIVERY),
)


@attrs.frozen
class MetricFamily:
    name: str
    type: str = attrs.field(validator=attrs.validators.in_(("counter", "gauge")))
    help: str


# Rendering order of the exposition document
FAMILIES: Tuple[MetricFamily, ...] = (
    MetricFamily("master_process_running", "gauge", "Postfix master process status (1=running, 0=not running)"),
    MetricFamily("master_process_uptime_seconds", "counter", "Postfix master process uptime in seconds"),
    MetricFamily("version_info", "gauge", "Postfix version information"),
    MetricFamily("queue_size", "gauge", "Number of messages in queue"),
    MetricFamily("messages_received_total", "counter", "Total number of messages received"),
    MetricFamily("messages_delivered_total", "counter", "Total number of messages delivered"),
    MetricFamily("messages_deferred_total", "counter", "Total number of messages deferred"),
    MetricFamily("messages_bounced_total", "counter", "Total number of messages bounced"),
    MetricFamily("messages_rejected_total", "counter", "Total number of messages rejected"),
    MetricFamily("smtpd_connections_total", "counter", "Total SMTP connections"),
    MetricFamily("smtpd_noqueue_total", "counter", "Total NOQUEUE rejections"),
    MetricFamily("smtpd_sasl_authenticated_total", "counter", "Total SASL authenticated sessions"),
    MetricFamily("smtpd_sasl_failed_total", "counter", "Total SASL authentication failures"),
    MetricFamily("smtpd_reject_total", "counter", "SMTP rejections by reason"),
    MetricFamily("delivery_status_total", "counter", "Deliveries by transport and status"),
)

# Family and labels of each persisted counter, in exposition order
COUNTER_SERIES: Mapping[CounterKey, Tuple[str, Dict[str, str]]] = {
    CounterKey.MESSAGES_RECEIVED: ("messages_received_total", {}),
    CounterKey.MESSAGES_DELIVERED: ("messages_delivered_total", {}),
    CounterKey.MESSAGES_DEFERRED: ("messages_deferred_total", {}),
    CounterKey.MESSAGES_BOUNCED: ("messages_bounced_total", {}),
    CounterKey.MESSAGES_REJECTED: ("messages_rejected_total", {}),
    CounterKey.SMTPD_CONNECTIONS: ("smtpd_connections_total", {}),
    CounterKey.SMTPD_NOQUEUE: ("smtpd_noqueue_total", {}),
    CounterKey.SMTPD_SASL_AUTHENTICATED: ("smtpd_sasl_authenticated_total", {}),
    CounterKey.SMTPD_SASL_FAILED: ("smtpd_sasl_failed_total", {}),
    CounterKey.REJECT_RBL: ("smtpd_reject_total", {"reason": "rbl"}),
    CounterKey.REJECT_HELO: ("smtpd_reject_total", {"reason": "helo"}),
    CounterKey.REJECT_SENDER: ("smtpd_reject_total", {"reason": "sender"}),
    CounterKey.REJECT_RECIPIENT: ("smtpd_reject_total", {"reason": "recipient"}),
    CounterKey.REJECT_CLIENT: ("smtpd_reject_total", {"reason": "client"}),
    CounterKey.REJECT_UNKNOWN_USER: ("smtpd_reject_total", {"reason": "unknown_user"}),
    CounterKey.SMTP_DELIVERY: ("delivery_status_total", {"transport": "smtp", "status": "sent"}),
    CounterKey.LMTP_DELIVERY: ("delivery_status_total", {"transport": "lmtp", "status": "sent"}),
    CounterKey.VIRTUAL_DELIVERY: ("delivery_status_total", {"transport": "virtual", "status": "sent"}),
    CounterKey.PIPE_DELIVERY: ("delivery_status_total", {"transport": "pipe", "status": "sent"}),
}
