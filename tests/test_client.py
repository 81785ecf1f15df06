"""Tests for the upstream HTTP client."""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

# Add src to path so we can import transitnet
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitnet.client import TransitClient


def response(json_data=None, content=b"", error=None):
    mock_response = MagicMock()
    mock_response.json.return_value = json_data
    mock_response.content = content
    if error is not None:
        mock_response.raise_for_status.side_effect = error
    return mock_response


class TestTransitClient(unittest.TestCase):
    """Test GET helpers and Overpass mirror fallback."""

    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.client = TransitClient(
            session=self.session,
            timeout=5,
            overpass_urls=["https://primary/api", "https://mirror/api"],
            overpass_timeout=30,
        )

    def test_user_agent_set(self):
        """Test the client identifies itself."""
        self.assertIn("User-Agent", self.session.headers)

    def test_get_json(self):
        """Test JSON is fetched with the configured timeout."""
        self.session.get.return_value = response(json_data={"1": [77.5, 12.9, "Majestic"]})

        data = self.client.get_json("https://example.test/stops.json")

        self.assertEqual(data["1"][2], "Majestic")
        self.session.get.assert_called_once_with("https://example.test/stops.json", timeout=5)

    def test_get_bytes_and_text(self):
        """Test raw and decoded bodies."""
        self.session.get.return_value = response(content="Kochi Metro".encode("utf-8"))

        self.assertEqual(self.client.get_bytes("https://example.test/a"), b"Kochi Metro")
        self.assertEqual(self.client.get_text("https://example.test/a"), "Kochi Metro")

    def test_http_error_propagates(self):
        """Test non-2xx responses raise."""
        self.session.get.return_value = response(error=requests.HTTPError("404 Client Error"))

        with self.assertRaises(requests.HTTPError):
            self.client.get_json("https://example.test/missing.json")

    def test_overpass_falls_back_to_mirror(self):
        """Test the next endpoint is tried when the first fails."""
        self.session.post.side_effect = [
            requests.ConnectionError("primary down"),
            response(json_data={"elements": [{"type": "node", "id": 1}]}),
        ]

        elements = self.client.overpass("[out:json];node(1);out;")

        self.assertEqual(elements, [{"type": "node", "id": 1}])
        self.assertEqual(self.session.post.call_count, 2)
        second_call = self.session.post.call_args_list[1]
        self.assertEqual(second_call.args[0], "https://mirror/api")
        self.assertEqual(second_call.kwargs["data"], {"data": "[out:json];node(1);out;"})
        self.assertEqual(second_call.kwargs["timeout"], 30)

    def test_overpass_all_endpoints_fail(self):
        """Test the last error is raised when every endpoint fails."""
        self.session.post.side_effect = [
            requests.ConnectionError("primary down"),
            requests.Timeout("mirror slow"),
        ]

        with self.assertRaises(requests.Timeout):
            self.client.overpass("[out:json];node(1);out;")

    def test_overpass_bad_json(self):
        """Test an undecodable body counts as a failed endpoint."""
        bad = response()
        bad.json.side_effect = ValueError("Expecting value")
        self.session.post.side_effect = [bad, bad]

        with self.assertRaises(requests.RequestException):
            self.client.overpass("[out:json];node(1);out;")


if __name__ == "__main__":
    unittest.main()
