from unittest import TestCase

from postfix_exporter.catalog import CounterKey
from postfix_exporter.exposition import Sample, counter_samples, render


class RenderTestCase(TestCase):
    def test_header_once_per_family(self):
        samples = [
            Sample("queue_size", 3, {"queue": "active"}),
            Sample("queue_size", 0, {"queue": "hold"}),
            Sample("master_process_running", 1),
        ]
        expected = (
            "# HELP postfix_master_process_running Postfix master process status (1=running, 0=not running)\n"
            "# TYPE postfix_master_process_running gauge\n"
            "postfix_master_process_running 1\n"
            "# HELP postfix_queue_size Number of messages in queue\n"
            "# TYPE postfix_queue_size gauge\n"
            'postfix_queue_size{queue="active"} 3\n'
            'postfix_queue_size{queue="hold"} 0\n'
        )
        self.assertEqual(expected, render(samples, "postfix"))

    def test_counter_families(self):
        counters = {key: 0 for key in CounterKey}
        counters[CounterKey.REJECT_RBL] = 2
        counters[CounterKey.LMTP_DELIVERY] = 5
        text = render(counter_samples(counters), "mx")
        lines = text.splitlines()

        self.assertEqual(1, lines.count("# TYPE mx_smtpd_reject_total counter"))
        self.assertEqual(1, lines.count("# HELP mx_delivery_status_total Deliveries by transport and status"))
        self.assertIn('mx_smtpd_reject_total{reason="rbl"} 2', lines)
        self.assertIn('mx_smtpd_reject_total{reason="unknown_user"} 0', lines)
        self.assertIn('mx_delivery_status_total{transport="lmtp",status="sent"} 5', lines)
        self.assertIn("mx_messages_received_total 0", lines)
        # 11 counter families with header pairs and 19 series
        self.assertEqual(11 * 2 + 19, len(lines))

    def test_deterministic(self):
        counters = {key: index for index, key in enumerate(CounterKey)}
        samples = counter_samples(counters) + [Sample("version_info", 1, {"version": "3.8.1"})]
        self.assertEqual(render(samples, "postfix"), render(list(samples), "postfix"))

    def test_label_escaping(self):
        text = render([Sample("version_info", 1, {"version": 'a"b\\c\nd'})], "postfix")
        self.assertIn('postfix_version_info{version="a\\"b\\\\c\\nd"} 1', text.splitlines())

    def test_float_values(self):
        text = render(
            [Sample("master_process_uptime_seconds", 12.0), Sample("queue_size", 1.5, {"queue": "active"})],
            "postfix",
        )
        lines = text.splitlines()
        self.assertIn("postfix_master_process_uptime_seconds 12", lines)
        self.assertIn('postfix_queue_size{queue="active"} 1.5', lines)

    def test_empty_prefix(self):
        text = render([Sample("master_process_running", 0)], "")
        self.assertIn("master_process_running 0", text.splitlines())

    def test_header_comments(self):
        text = render([], "postfix", header=["Postfix Mail Server Metrics"])
        self.assertEqual("# Postfix Mail Server Metrics\n", text)

    def test_unknown_family(self):
        with self.assertRaises(KeyError):
            render([Sample("no_such_family", 1)], "postfix")
