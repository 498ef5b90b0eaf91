"""Shared OTel metrics instruments for the service."""

from opentelemetry import metrics

METER_NAME = "blog_api"

meter = metrics.get_meter(METER_NAME)

posts_created_total = meter.create_counter(
    name="posts_created_total",
    description="Total blog posts created",
    unit="1",
)

posts_updated_total = meter.create_counter(
    name="posts_updated_total",
    description="Total blog posts updated",
    unit="1",
)

posts_deleted_total = meter.create_counter(
    name="posts_deleted_total",
    description="Total blog posts deleted (existing ids only)",
    unit="1",
)

store_errors_total = meter.create_counter(
    name="store_errors_total",
    description="Document store failures surfaced as 500 responses",
    unit="1",
)
