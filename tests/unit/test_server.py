import threading
import urllib.error
import urllib.request
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase
from unittest.mock import patch

from postfix_exporter.collector import Collector
from postfix_exporter.config import ExporterConfiguration
from postfix_exporter.server import CONTENT_TYPE, make_server
from tests.unit import sample_lines as lines


class MetricsServerTestCase(TestCase):
    def setUp(self):
        self._temp_dir = TemporaryDirectory()
        root = Path(self._temp_dir.name)
        self.log_path = root / "mail.log"
        self.log_path.write_text(lines.REJECT_RBL + "\n")
        config = ExporterConfiguration(log_path=self.log_path, state_file=root / "state")

        patcher = patch("postfix_exporter.collector.gauge_samples", return_value=[])
        patcher.start()
        self.addCleanup(patcher.stop)

        self.server = make_server(Collector(config), ("127.0.0.1", 0))
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        self.base_url = f"http://127.0.0.1:{self.server.server_address[1]}"

    def tearDown(self):
        self.server.shutdown()
        self.server.server_close()
        self.thread.join()
        self._temp_dir.cleanup()

    def get(self, path):
        with urllib.request.urlopen(self.base_url + path, timeout=5) as response:
            return response.status, response.headers["Content-Type"], response.read().decode("utf-8")

    def test_metrics(self):
        status, content_type, body = self.get("/metrics")
        self.assertEqual(200, status)
        self.assertEqual(CONTENT_TYPE, content_type)
        self.assertIn('postfix_smtpd_reject_total{reason="rbl"} 1', body.splitlines())

    def test_scrapes_do_not_recount(self):
        self.get("/metrics")
        with self.log_path.open("a") as fp:
            fp.write(lines.REJECT_RBL + "\n")
        _, _, body = self.get("/metrics")
        self.assertIn("postfix_messages_rejected_total 2", body.splitlines())
        _, _, body = self.get("/metrics")
        self.assertIn("postfix_messages_rejected_total 2", body.splitlines())

    def test_index(self):
        status, _, body = self.get("/")
        self.assertEqual(200, status)
        self.assertIn('href="/metrics"', body)

    def test_not_found(self):
        with self.assertRaises(urllib.error.HTTPError) as context:
            self.get("/nope")
        self.assertEqual(404, context.exception.code)

    def test_failed_collection(self):
        with patch("postfix_exporter.store.os.replace", side_effect=OSError("read-only file system")), \
                self.assertLogs("postfix_exporter", level="ERROR"):
            with self.assertRaises(urllib.error.HTTPError) as context:
                self.get("/metrics")
        self.assertEqual(500, context.exception.code)
