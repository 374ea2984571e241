from .setup import setup_observability
from .metrics import (
    dispatch_assignments_total,
    dispatch_commit_conflicts_total,
    dispatch_transitions_total,
    dispatch_geo_request_seconds,
    dispatch_outbox_messages_total,
    dispatch_ingested_orders_total,
)
