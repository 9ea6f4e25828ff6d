"""
Mock OAuth2 Server Metrics Collection

Prometheus metrics for issued tokens, error responses and consumed
token callbacks.
"""

from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class OAuth2Metrics:
    """
    Prometheus metrics collector for the authorization server.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (a private one if None)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.tokens_issued_total = Counter(
            'mock_oauth2_tokens_issued_total',
            'Total token responses issued',
            ['issuer', 'grant_type'],
            registry=self.registry
        )

        self.errors_total = Counter(
            'mock_oauth2_errors_total',
            'Total OAuth2 error responses',
            ['error'],
            registry=self.registry
        )

        self.token_callbacks_consumed_total = Counter(
            'mock_oauth2_token_callbacks_consumed_total',
            'Total enqueued token callbacks consumed',
            ['issuer'],
            registry=self.registry
        )

    def record_token_issued(self, issuer: str, grant_type: str) -> None:
        self.tokens_issued_total.labels(issuer=issuer, grant_type=grant_type).inc()

    def record_error(self, error: str) -> None:
        self.errors_total.labels(error=error).inc()

    def record_callback_consumed(self, issuer: str) -> None:
        self.token_callbacks_consumed_total.labels(issuer=issuer).inc()

    def export(self) -> bytes:
        """Render all metrics in Prometheus text format."""
        return generate_latest(self.registry)

    content_type = CONTENT_TYPE_LATEST
