import os
import tempfile
import unittest

from chromxify.config import Settings, load_settings

INI = """\
[chromxify]
debugger_port = 9333
proxy_port = 8081
redirect_https = false
settle_delay = 2.5
command_timeout = 30
keyboard = no
"""


class TestLoadSettings(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.ini = os.path.join(self.tmp.name, "config.ini")
        with open(self.ini, "w", encoding="utf-8") as file:
            file.write(INI)
        self.missing = os.path.join(self.tmp.name, "missing.ini")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_defaults(self) -> None:
        settings = load_settings(["-c", self.missing], environ={})
        self.assertEqual(settings, Settings())
        self.assertEqual(settings.debugger_host, "127.0.0.1")
        self.assertEqual(settings.debugger_port, 9222)
        self.assertEqual(settings.proxy_port, 9090)
        self.assertTrue(settings.redirect_https)

    def test_ini_file(self) -> None:
        settings = load_settings(["-c", self.ini], environ={})
        self.assertEqual(settings.debugger_port, 9333)
        self.assertEqual(settings.proxy_port, 8081)
        self.assertFalse(settings.redirect_https)
        self.assertEqual(settings.settle_delay, 2.5)
        self.assertEqual(settings.command_timeout, 30.0)
        self.assertIs(settings.keyboard, False)

    def test_environment_beats_ini(self) -> None:
        environ = {"CHROME_DEBUGGER_HOST": "10.0.0.2", "PROXY_PORT": "7000", "REDIRECT_HTTPS": "true"}
        settings = load_settings(["-c", self.ini], environ=environ)
        self.assertEqual(settings.debugger_host, "10.0.0.2")
        self.assertEqual(settings.proxy_port, 7000)
        self.assertTrue(settings.redirect_https)
        self.assertEqual(settings.debugger_port, 9333)

    def test_redirect_https_env_disables_only_on_false(self) -> None:
        self.assertFalse(load_settings(["-c", self.missing], environ={"REDIRECT_HTTPS": "false"}).redirect_https)
        self.assertTrue(load_settings(["-c", self.missing], environ={"REDIRECT_HTTPS": "yes"}).redirect_https)
        for value in ("0", "no", "off"):
            self.assertTrue(load_settings(["-c", self.missing], environ={"REDIRECT_HTTPS": value}).redirect_https)

    def test_command_line_beats_everything(self) -> None:
        settings = load_settings(
            ["-c", self.ini, "--port", "6000", "--redirect-https", "--debugger-url", "ws://h:1/devtools/browser/x"],
            environ={"PROXY_PORT": "7000"},
        )
        self.assertEqual(settings.proxy_port, 6000)
        self.assertTrue(settings.redirect_https)
        self.assertEqual(settings.debugger_url, "ws://h:1/devtools/browser/x")

    def test_invalid_environment_value(self) -> None:
        with self.assertRaises(SystemExit):
            load_settings(["-c", self.missing], environ={"CHROME_DEBUGGER_PORT": "nine"})


if __name__ == "__main__":
    unittest.main()
