from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

from postfix_exporter.config import ExporterConfiguration


class ExporterConfigurationTestCase(TestCase):
    def test_defaults(self):
        config = ExporterConfiguration()
        self.assertEqual(Path("/var/log/mail.log"), config.log_path)
        self.assertEqual(Path("/var/spool/postfix"), config.queue_dir)
        self.assertEqual("postfix", config.metrics_prefix)
        self.assertEqual(10000, config.log_lines)
        self.assertEqual(Path("/var/lib/postfix-exporter/state"), config.state_file)
        self.assertEqual(Path("/var/lib/postfix-exporter/state.lock"), config.lock_file)
        self.assertEqual(9154, config.listen_port)

    def test_read_toml(self):
        with TemporaryDirectory() as temp_dir:
            source_path = Path(temp_dir) / "exporter.toml"
            source_path.write_text(
                """
                log_path = "/srv/log/maillog"
                metrics_prefix = "mx1"
                log_lines = 500
                state_file = "/srv/state/postfix"
                """
            )
            config = ExporterConfiguration.load_toml(source_path)

        self.assertEqual(
            ExporterConfiguration(
                log_path=Path("/srv/log/maillog"),
                metrics_prefix="mx1",
                log_lines=500,
                state_file=Path("/srv/state/postfix"),
            ),
            config,
        )

    def test_read_toml_with_unexpected_field(self):
        with TemporaryDirectory() as temp_dir:
            source_path = Path(temp_dir) / "exporter.toml"
            source_path.write_text('metrics_prefix = "mx1"\ncache_ttl = 60\n')

            with self.assertRaises(ValueError):
                ExporterConfiguration.load_toml(source_path)

            config = ExporterConfiguration.load_toml(source_path, skip_unexpected_fields=True)
        self.assertEqual("mx1", config.metrics_prefix)

    def test_write_read(self):
        with TemporaryDirectory() as temp_dir:
            output_path = Path(temp_dir) / "exporter.toml"
            src_config = ExporterConfiguration(
                log_path="/srv/log/maillog",
                queue_dir="/srv/spool/postfix",
                listen_port=9155,
            )
            src_config.dump_toml(output_path)

            read_config = ExporterConfiguration.load_toml(output_path)
        self.assertEqual(src_config, read_config)

    def test_from_env(self):
        environ = {
            "POSTFIX_LOG": "/srv/log/maillog",
            "POSTFIX_QUEUE_DIR": "/srv/spool/postfix",
            "METRICS_PREFIX": "mx2",
            "LOG_LINES": "25",
            "STATE_FILE": "/tmp/postfix-exporter-state",
            "LISTEN_PORT": "9200",
            "LOG_LEVEL": "",
            "UNRELATED": "1",
        }
        config = ExporterConfiguration.from_env(environ)
        self.assertEqual(Path("/srv/log/maillog"), config.log_path)
        self.assertEqual(Path("/srv/spool/postfix"), config.queue_dir)
        self.assertEqual("mx2", config.metrics_prefix)
        self.assertEqual(25, config.log_lines)
        self.assertEqual(Path("/tmp/postfix-exporter-state"), config.state_file)
        self.assertEqual(9200, config.listen_port)
        self.assertEqual("info", config.log_level)

    def test_invalid_log_lines(self):
        with self.assertRaises(ValueError):
            ExporterConfiguration(log_lines=0)
        with self.assertRaises(ValueError):
            ExporterConfiguration.from_env({"LOG_LINES": "many"})
