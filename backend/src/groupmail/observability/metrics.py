"""Prometheus metrics for groupmail.

Defines operational metrics for the inbound pipeline and outbound delivery.
"""

from prometheus_client import Counter, Histogram

# Inbound pipeline
inbound_emails_total = Counter(
    "groupmail_inbound_emails_total",
    "Total inbound emails handled",
    ["outcome"]  # outcome: ok|duplicate|invalid|not_found|error
)

pipeline_duration_seconds = Histogram(
    "groupmail_pipeline_duration_seconds",
    "Time spent processing one inbound email in seconds",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

posts_created_total = Counter(
    "groupmail_posts_created_total",
    "Total posts created from inbound email",
    ["kind"]  # kind: thread|reply
)

# Outbound notifications
notifications_total = Counter(
    "groupmail_notifications_total",
    "Total outbound notifications",
    ["template", "status"]  # status: queued|failed|sent
)
