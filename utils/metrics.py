import logging

from prometheus_client import Counter, start_http_server


logger = logging.getLogger("sentineld.metrics")

QUERIES = Counter('sentineld_queries_total', 'Client queries by policy verdict', ['verdict'])
ANSWERS = Counter('sentineld_answers_total', 'Upstream answers by routing outcome', ['outcome'])
UNEXPECTED_SOURCE = Counter('sentineld_unexpected_answer_source_total',
                            'Upstream-socket datagrams not sent by the configured resolver')
IO_ERRORS = Counter('sentineld_io_errors_total', 'Failed sends or receives', ['endpoint'])


class ProxyMetrics:
    """Thin switch over the module counters; nothing is counted unless enabled."""

    def __init__(self, enabled: bool = False, port: int = 8000):
        self.enabled = bool(enabled)
        self.port = port
        self._started = False

    def start(self):
        if not self.enabled or self._started:
            return
        try:
            start_http_server(self.port)
            self._started = True
            logger.info("Prometheus metrics server started on :%d", self.port)
        except OSError as e:
            logger.warning("Could not start prometheus http server on :%d: %s", self.port, e)

    def query(self, verdict: str):
        if self.enabled:
            QUERIES.labels(verdict=verdict).inc()

    def answer(self, outcome: str):
        if self.enabled:
            ANSWERS.labels(outcome=outcome).inc()

    def unexpected_source(self):
        if self.enabled:
            UNEXPECTED_SOURCE.inc()

    def io_error(self, endpoint: str):
        if self.enabled:
            IO_ERRORS.labels(endpoint=endpoint).inc()
