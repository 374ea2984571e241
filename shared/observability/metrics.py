from prometheus_client import Counter, Histogram

# Business Metrics
dispatch_assignments_total = Counter(
    "dispatch_assignments_total",
    "Automatic assignment attempts by outcome",
    ["outcome"]  # Labels: 'assigned', 'no_candidates', 'no_valid_route', 'conflict', 'ungeocoded'
)

dispatch_commit_conflicts_total = Counter(
    "dispatch_commit_conflicts_total",
    "Atomic commits rejected because of concurrent mutation or full capacity"
)

dispatch_transitions_total = Counter(
    "dispatch_transitions_total",
    "Lifecycle transitions applied",
    ["transition"]  # Labels: 'accept', 'reject', 'picked_up', 'delivered', 'cancelled'
)

dispatch_geo_request_seconds = Histogram(
    "dispatch_geo_request_seconds",
    "GeoService call latency in seconds",
    ["operation"]  # Labels: 'geocode', 'distance'
)

dispatch_outbox_messages_total = Counter(
    "dispatch_outbox_messages_total",
    "Outbox messages processed",
    ["kind", "status"]  # Labels: status='sent', 'retry', 'failed'
)

dispatch_ingested_orders_total = Counter(
    "dispatch_ingested_orders_total",
    "Webhook orders ingested",
    ["result"]  # Labels: 'created', 'existing'
)
