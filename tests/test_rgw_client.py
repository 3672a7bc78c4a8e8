"""
Tests for the admin API client, configuration and command line.

Run with: python -m pytest tests/ -v
"""

import io
import os
import sys
import threading
import unittest
from unittest.mock import Mock, patch

import requests
from prometheus_client import CollectorRegistry, generate_latest
from rich.console import Console

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rgw_usage_exporter import cli
from rgw_usage_exporter.collector import RGWUsageCollector
from rgw_usage_exporter.models import ExporterConfig, Snapshot, UserRecord, UserResult, parse_bool
from rgw_usage_exporter.rgw_client import RGWAdminClient, RGWAdminError
from rgw_usage_exporter.aggregator import aggregate_usage

from test_collector import make_fleet, usage_entry

USAGE_RESPONSE = {
    "entries": [
        {
            "user": "alice",
            "buckets": [
                {
                    "bucket": "photos",
                    "time": "2024-01-01T10:00:00.000000Z",
                    "epoch": 1704103200,
                    "owner": "alice",
                    "categories": [
                        {"category": "get_obj", "bytes_sent": 100, "bytes_received": 0,
                         "ops": 3, "successful_ops": 3},
                    ],
                },
                {
                    "bucket": "",
                    "time": "2024-01-01T10:00:00.000000Z",
                    "epoch": 1704103200,
                    "owner": "alice",
                    "categories": [
                        {"category": "list_buckets", "bytes_sent": 250, "bytes_received": 0,
                         "ops": 1, "successful_ops": 1},
                    ],
                },
            ],
        }
    ],
    "summary": [],
}

USER_RESPONSE = {
    "user_id": "alice",
    "display_name": "Alice",
    "suspended": 0,
    "max_buckets": 1000,
    "bucket_quota": {"enabled": False, "check_on_raw": False, "max_size": -1,
                     "max_size_kb": 0, "max_objects": -1},
    "user_quota": {"enabled": True, "check_on_raw": False, "max_size": 10240,
                   "max_size_kb": 10, "max_objects": 1000},
    "stats": {"size": 2048, "size_actual": 8192, "size_utilized": 2048,
              "size_kb": 2, "size_kb_actual": 8, "size_kb_utilized": 2, "num_objects": 2},
}

BUCKETS_RESPONSE = [
    {
        "bucket": "photos",
        "owner": "alice",
        "usage": {"rgw.main": {"size": 2048, "size_actual": 8192, "num_objects": 2}},
    },
    {
        "bucket": "empty",
        "owner": "alice",
        "usage": {},
    },
]


def json_response(payload, status=200):
    resp = Mock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} Error")
    return resp


class TestRGWAdminClient(unittest.TestCase):
    """Test admin client requests and parsing."""

    def setUp(self):
        self.client = RGWAdminClient("http://rgw.example:8080/", "AK", "SK", timeout=5)
        self.client.session.get = Mock()

    def test_invalid_endpoint(self):
        for endpoint in ("", "rgw.example:8080", "ftp://rgw.example"):
            with self.assertRaises(ValueError):
                RGWAdminClient(endpoint, "AK", "SK")

    def test_tls_verification_toggle(self):
        insecure = RGWAdminClient("https://rgw.example", "AK", "SK", verify_tls=False)
        self.assertFalse(insecure.session.verify)
        self.assertTrue(self.client.session.verify)

    def test_get_usage(self):
        self.client.session.get.return_value = json_response(USAGE_RESPONSE)

        entries = self.client.get_usage()

        args, kwargs = self.client.session.get.call_args
        self.assertEqual(args[0], "http://rgw.example:8080/admin/usage")
        self.assertEqual(kwargs['params']['show-entries'], 'true')
        self.assertEqual(kwargs['params']['show-summary'], 'false')
        self.assertEqual(kwargs['params']['format'], 'json')
        self.assertEqual(kwargs['timeout'], 5)

        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].user, "alice")
        self.assertEqual([b.bucket for b in entries[0].buckets], ["photos", ""])
        self.assertEqual(entries[0].buckets[0].categories[0].ops, 3)

    def test_usage_without_entries(self):
        self.client.session.get.return_value = json_response({"summary": []})
        self.assertEqual(self.client.get_usage(), [])

    def test_list_user_ids(self):
        self.client.session.get.return_value = json_response(["alice", "bob"])

        self.assertEqual(self.client.list_user_ids(), ["alice", "bob"])
        args, _ = self.client.session.get.call_args
        self.assertEqual(args[0], "http://rgw.example:8080/admin/metadata/user")

    def test_get_user(self):
        self.client.session.get.return_value = json_response(USER_RESPONSE)

        user = self.client.get_user("alice")

        _, kwargs = self.client.session.get.call_args
        self.assertEqual(kwargs['params']['uid'], 'alice')
        self.assertEqual(kwargs['params']['stats'], 'true')
        self.assertEqual(user.user_id, "alice")
        self.assertEqual(user.num_objects, 2)
        self.assertEqual(user.size_bytes, 2048)
        self.assertTrue(user.user_quota.enabled)
        self.assertEqual(user.user_quota.max_size_bytes, 10240)
        self.assertFalse(user.bucket_quota.enabled)
        self.assertEqual(user.bucket_quota.max_objects, -1)

    def test_get_user_without_stats(self):
        payload = {k: v for k, v in USER_RESPONSE.items() if k not in ("stats", "bucket_quota")}
        self.client.session.get.return_value = json_response(payload)

        user = self.client.get_user("alice")

        self.assertIsNone(user.num_objects)
        self.assertIsNone(user.size_bytes)
        self.assertIsNone(user.bucket_quota.enabled)
        self.assertIsNone(user.bucket_quota.max_size_bytes)

    def test_list_user_buckets_with_stats(self):
        self.client.session.get.return_value = json_response(BUCKETS_RESPONSE)

        buckets = self.client.list_user_buckets_with_stats("alice")

        self.assertEqual(buckets[0].bucket, "photos")
        self.assertEqual(buckets[0].size_bytes, 8192)
        self.assertEqual(buckets[0].num_objects, 2)
        self.assertIsNone(buckets[1].size_bytes)
        self.assertIsNone(buckets[1].num_objects)

    def test_transport_error(self):
        self.client.session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with self.assertRaises(RGWAdminError) as ctx:
            self.client.get_usage()
        self.assertEqual(ctx.exception.path, "usage")

    def test_http_error(self):
        self.client.session.get.return_value = json_response({"Code": "AccessDenied"}, status=403)

        with self.assertRaises(RGWAdminError):
            self.client.get_user("alice")

    def test_invalid_json(self):
        resp = json_response(None)
        resp.json.side_effect = ValueError("Expecting value")
        self.client.session.get.return_value = resp

        with self.assertRaises(RGWAdminError):
            self.client.list_user_ids()

    def test_unexpected_shapes(self):
        self.client.session.get.return_value = json_response({"not": "a list"})
        with self.assertRaises(RGWAdminError):
            self.client.list_user_ids()
        with self.assertRaises(RGWAdminError):
            self.client.list_user_buckets_with_stats("alice")

        self.client.session.get.return_value = json_response(["not", "a", "dict"])
        with self.assertRaises(RGWAdminError):
            self.client.get_usage()

    def test_null_labels_rejected(self):
        """JSON nulls where a label value belongs are payload errors."""
        null_category = {"entries": [{"user": "alice", "buckets": [
            {"bucket": "photos", "categories": [{"category": None, "ops": 1}]}]}]}
        null_user = {"entries": [{"user": None, "buckets": []}]}
        for payload in (null_category, null_user):
            self.client.session.get.return_value = json_response(payload)
            with self.assertRaises(RGWAdminError):
                self.client.get_usage()

        self.client.session.get.return_value = json_response([{"bucket": None, "owner": "alice"}])
        with self.assertRaises(RGWAdminError):
            self.client.list_user_buckets_with_stats("alice")

        self.client.session.get.return_value = json_response({"user_id": 42})
        with self.assertRaises(RGWAdminError):
            self.client.get_user("alice")

    def test_null_usage_label_reports_down(self):
        """A malformed usage payload fails the pass instead of the exposition."""
        self.client.session.get.return_value = json_response(
            {"entries": [{"user": "alice", "buckets": [
                {"bucket": "photos", "categories": [{"category": None, "ops": 1}]}]}]})
        registry = CollectorRegistry()
        registry.register(RGWUsageCollector(self.client, store="eu-west"))

        output = generate_latest(registry).decode()

        self.assertIn("radosgw_up 0.0", output)
        self.assertEqual(registry.get_sample_value("radosgw_up"), 0.0)
        self.assertIsNone(registry.get_sample_value(
            "radosgw_usage_ops_total",
            {"bucket": "photos", "owner": "alice", "category": "None", "store": "eu-west"}))

    def test_session_per_thread(self):
        main_session = self.client.session
        seen = []
        worker = threading.Thread(target=lambda: seen.append(self.client.session))
        worker.start()
        worker.join()

        self.assertIsNot(seen[0], main_session)
        self.assertIs(self.client.session, main_session)
        self.assertIs(seen[0].auth, self.client.auth)
        self.assertEqual(seen[0].verify, self.client.verify_tls)

    def test_close_releases_sessions(self):
        first = self.client.session
        with patch.object(first, 'close') as close:
            self.client.close()
        close.assert_called_once_with()
        self.assertIsNot(self.client.session, first)


class TestConfig(unittest.TestCase):
    """Test configuration from environment."""

    def test_defaults(self):
        config = ExporterConfig.from_env({})

        self.assertEqual(config.store, "us-east-1")
        self.assertEqual(config.port, 9242)
        self.assertFalse(config.insecure)
        self.assertEqual(config.workers, 1)
        self.assertEqual(config.missing_required(), ["RADOSGW_ENDPOINT", "ACCESS_KEY", "SECRET_KEY"])

    def test_from_env(self):
        config = ExporterConfig.from_env({
            "RADOSGW_ENDPOINT": "https://rgw:443",
            "ACCESS_KEY": "AK",
            "SECRET_KEY": "SK",
            "STORE": "eu-west",
            "METRICS_PORT": "9999",
            "INSECURE_SKIP_VERIFY": "TRUE",
            "WALK_WORKERS": "0",
        })

        self.assertEqual(config.missing_required(), [])
        self.assertEqual(config.store, "eu-west")
        self.assertEqual(config.port, 9999)
        self.assertTrue(config.insecure)
        self.assertEqual(config.workers, 1)

    def test_parse_bool(self):
        self.assertTrue(parse_bool("t"))
        self.assertTrue(parse_bool("1"))
        self.assertFalse(parse_bool("False"))
        self.assertFalse(parse_bool("yes"))

    def test_invalid_port(self):
        with self.assertRaises(ValueError):
            ExporterConfig.from_env({"METRICS_PORT": "http"})


class TestCLI(unittest.TestCase):
    """Test command line entry points."""

    ENV = {"RADOSGW_ENDPOINT": "http://rgw:8080", "ACCESS_KEY": "AK", "SECRET_KEY": "SK"}

    def test_serve_requires_credentials(self):
        with patch.dict(os.environ, {}, clear=True), \
                patch('rgw_usage_exporter.cli.start_http_server') as start:
            with self.assertLogs('rgw_usage_exporter.cli', level='ERROR') as logs:
                code = cli.main(['serve'])

        self.assertEqual(code, 1)
        start.assert_not_called()
        self.assertIn('RADOSGW_ENDPOINT', logs.output[0])

    def test_serve_rejects_malformed_endpoint(self):
        with patch.dict(os.environ, dict(self.ENV, RADOSGW_ENDPOINT="rgw:8080"), clear=True), \
                patch('rgw_usage_exporter.cli.start_http_server') as start:
            with self.assertLogs('rgw_usage_exporter.cli', level='ERROR'):
                code = cli.main(['serve'])

        self.assertEqual(code, 1)
        start.assert_not_called()

    def test_flags_override_env(self):
        args = cli.build_parser().parse_args(['serve', '--store', 'lab', '--port', '9100', '--workers', '3'])
        with patch.dict(os.environ, dict(self.ENV, STORE="prod"), clear=True):
            config = cli.load_config(args)

        self.assertEqual(config.store, "lab")
        self.assertEqual(config.port, 9100)
        self.assertEqual(config.workers, 3)
        self.assertEqual(config.endpoint, "http://rgw:8080")

    def _run_snapshot(self, client):
        out = io.StringIO()
        with patch.dict(os.environ, self.ENV, clear=True), \
                patch('rgw_usage_exporter.cli.RGWAdminClient', return_value=client), \
                patch('rgw_usage_exporter.cli.Console', return_value=Console(file=out, width=200)):
            code = cli.main(['snapshot', '--store', 'lab'])
        return code, out.getvalue()

    def test_snapshot_healthy(self):
        client = make_fleet(2)
        client.fail_user.add("user-1")

        code, output = self._run_snapshot(client)

        self.assertEqual(code, 0)
        self.assertIn("UP", output)
        self.assertIn("bucket-0", output)
        self.assertIn("Skipped (1)", output)

    def test_snapshot_unhealthy(self):
        client = make_fleet(1)
        client.fail_usage = True

        code, output = self._run_snapshot(client)

        self.assertEqual(code, 1)
        self.assertIn("DOWN", output)

    def test_render_snapshot(self):
        snapshot = Snapshot(
            store="lab",
            usage=aggregate_usage([usage_entry("alice", "photos", "get_obj", ops=8, bytes_sent=300)], "lab"),
            users=[UserResult("alice", user=UserRecord(user_id="alice", size_bytes=2048))],
            duration_seconds=0.5,
        )
        out = io.StringIO()

        cli.render_snapshot(snapshot, Console(file=out, width=200))

        output = out.getvalue()
        self.assertIn("photos", output)
        self.assertIn("get_obj", output)
        self.assertIn("2.0 KB", output)
        self.assertNotIn("Skipped", output)

    def test_render_snapshot_skip_scope(self):
        snapshot = Snapshot(
            store="lab",
            users=[
                UserResult("alice", user=UserRecord(user_id="alice", num_objects=7),
                           skip_reason="bucket: timeout listing alice"),
                UserResult("bob", skip_reason="user: 404 NoSuchUser bob"),
            ],
        )
        out = io.StringIO()

        cli.render_snapshot(snapshot, Console(file=out, width=200))

        output = out.getvalue()
        self.assertIn("Skipped (2)", output)
        alice_row = next(line for line in output.splitlines() if "timeout listing alice" in line)
        bob_row = next(line for line in output.splitlines() if "NoSuchUser bob" in line)
        self.assertIn("buckets", alice_row)
        self.assertIn(" user ", bob_row)

    def test_format_bytes(self):
        self.assertEqual(cli.format_bytes(None), "-")
        self.assertEqual(cli.format_bytes(512), "512.0 B")
        self.assertEqual(cli.format_bytes(10240), "10.0 KB")


if __name__ == '__main__':
    unittest.main()
