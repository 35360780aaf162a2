import unittest

from chromxify.headers import IGNORED_HEADERS, filter_headers


class TestFilterHeaders(unittest.TestCase):
    def test_drops_denied_names_and_prefixes(self) -> None:
        headers = {
            "Accept": "text/html",
            "Host": "a.example",
            "Cookie": "sid=1",
            "Content-Length": "12",
            "Proxy-Authorization": "Basic xyz",
            "Sec-Fetch-Mode": "navigate",
            "sec-ch-ua": '"Chromium"',
            "X-Custom": "kept",
        }
        self.assertEqual(filter_headers(headers), {"Accept": "text/html", "X-Custom": "kept"})

    def test_every_denied_header_is_removed(self) -> None:
        headers = {name.upper(): "v" for name in IGNORED_HEADERS}
        self.assertEqual(filter_headers(headers), {})

    def test_non_text_values_are_dropped(self) -> None:
        headers = {"X-List": ["a", "b"], "X-Int": 3, "X-Text": "ok"}
        self.assertEqual(filter_headers(headers), {"X-Text": "ok"})

    def test_empty_input(self) -> None:
        self.assertEqual(filter_headers(None), {})
        self.assertEqual(filter_headers({}), {})

    def test_idempotent(self) -> None:
        headers = {"Accept": "*/*", "Origin": "https://a.example", "sec-gpc": "1", "User-Agent": "curl"}
        once = filter_headers(headers)
        self.assertEqual(filter_headers(once), once)

    def test_input_is_not_modified(self) -> None:
        headers = {"Host": "a.example", "Accept": "*/*"}
        filter_headers(headers)
        self.assertIn("Host", headers)


if __name__ == "__main__":
    unittest.main()
