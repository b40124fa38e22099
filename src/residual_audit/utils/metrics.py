"""Prometheus metrics definitions"""

from prometheus_client import Counter, Histogram, Gauge


# Intake
uploads_processed = Counter(
    'residual_uploads_processed_total',
    'Processor uploads processed',
    labelnames=['processor', 'outcome']  # accepted, rejected, forced
)

rows_dropped = Counter(
    'residual_rows_dropped_total',
    'Raw rows dropped during normalization',
    labelnames=['processor']
)

validation_findings = Counter(
    'residual_validation_findings_total',
    'Validation findings by severity',
    labelnames=['processor', 'severity']
)

# Resolution
assignments_upserted = Counter(
    'residual_assignments_upserted_total',
    'Assignment rows upserted',
    labelnames=['rule']
)

# Audit
audit_run_duration = Histogram(
    'residual_audit_run_duration_seconds',
    'Time to complete an audit run',
    buckets=[0.1, 0.5, 1, 5, 15, 60]
)

audit_runs = Counter(
    'residual_audit_runs_total',
    'Audit runs by final status',
    labelnames=['status']  # completed, failed
)

audit_issues_created = Counter(
    'residual_audit_issues_created_total',
    'Audit issues created',
    labelnames=['issue_type', 'severity']
)

audit_issues_resolved = Counter(
    'residual_audit_issues_resolved_total',
    'Audit issues resolved by humans'
)

open_audit_issues = Gauge(
    'residual_open_audit_issues',
    'Audit issues currently open, per month',
    labelnames=['month']
)
