import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Tuple

from postfix_exporter.collector import Collector
from postfix_exporter.exceptions import ExporterError

__all__ = ["CONTENT_TYPE", "make_server", "serve"]

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

INDEX_PAGE = b"""<html>
<head><title>Postfix Exporter</title></head>
<body>
<h1>Postfix Exporter</h1>
<p><a href="/metrics">Metrics</a></p>
</body>
</html>
"""


class MetricsHandler(BaseHTTPRequestHandler):
    # Set on the subclass built by make_server
    collector: Collector

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        if path == "/metrics":
            try:
                body = self.collector.collect().encode("utf-8")
            except (ExporterError, OSError):
                logger.exception("collect.error")
                self._send(500, b"collection failed\n", "text/plain; charset=utf-8")
                return
            self._send(200, body, CONTENT_TYPE)
        elif path == "/":
            self._send(200, INDEX_PAGE, "text/html; charset=utf-8")
        else:
            self._send(404, b"not found\n", "text/plain; charset=utf-8")

    def _send(self, status: int, body: bytes, content_type: str):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} {format % args}")


def make_server(collector: Collector, address: Tuple[str, int]) -> ThreadingHTTPServer:
    handler = type("BoundMetricsHandler", (MetricsHandler,), {"collector": collector})
    return ThreadingHTTPServer(address, handler)


def serve(collector: Collector) -> None:
    config = collector.config
    server = make_server(collector, (config.listen_address, config.listen_port))
    logger.info(f"Serving metrics on http://{config.listen_address}:{config.listen_port}/metrics")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
