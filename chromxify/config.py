"""
Configuration.

Each setting is taken from the first source that provides it:

1. command line argument,
2. environment variable,
3. the ``[chromxify]`` section of the ini file given with ``-c/--config``,
4. the built-in default.
"""

from __future__ import annotations

import argparse
import configparser
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

SECTION = "chromxify"


@dataclass(frozen=True)
class Settings:
    """All tunable knobs.

    Attributes
    ----------
    debugger_host, debugger_port:
        Remote debugging endpoint of the running browser
        (``--remote-debugging-port``).
    debugger_url:
        Browser websocket URL.  Discovered from ``/json/version`` when unset.
    proxy_host, proxy_port:
        Where the HTTP(S) proxy listens.
    redirect_https:
        Redirect ``http://`` requests to ``https://`` instead of fetching
        them, which avoids mixed-content errors in the browser.
    settle_delay:
        Longest wait, in seconds, for a freshly opened tab to load.
    command_timeout:
        Deadline for each DevTools command.  ``None`` waits forever.
    confdir:
        mitmproxy configuration directory holding the CA certificate.
    log_level:
        Name of the console log level (``TRACE`` shows DevTools traffic).
    keyboard:
        Read single-key commands from the terminal.  ``None`` enables it
        when stdin is a TTY.
    """

    debugger_host: str = "127.0.0.1"
    debugger_port: int = 9222
    debugger_url: Optional[str] = None
    proxy_host: str = "127.0.0.1"
    proxy_port: int = 9090
    redirect_https: bool = True
    settle_delay: float = 1.0
    command_timeout: Optional[float] = None
    confdir: str = "~/.mitmproxy"
    log_level: str = "INFO"
    keyboard: Optional[bool] = None


def _to_bool(value: str) -> bool:
    return value.strip().lower() != "false"


# key -> (environment variable, converter)
ENVIRONMENT: dict[str, tuple[str, Callable[[str], Any]]] = {
    "debugger_host": ("CHROME_DEBUGGER_HOST", str),
    "debugger_port": ("CHROME_DEBUGGER_PORT", int),
    "debugger_url": ("CHROME_DEBUGGER_URL", str),
    "proxy_host": ("PROXY_HOST", str),
    "proxy_port": ("PROXY_PORT", int),
    "redirect_https": ("REDIRECT_HTTPS", _to_bool),
    "settle_delay": ("SETTLE_DELAY", float),
    "command_timeout": ("COMMAND_TIMEOUT", float),
    "confdir": ("MITMPROXY_CONFDIR", str),
    "log_level": ("LOG_LEVEL", str),
}


parser = argparse.ArgumentParser(
    prog="chromxify",
    description="HTTP(S) proxy that replays every request as fetch() inside a running Chromium browser",
)
parser.add_argument('-c', '--config', type=str, metavar='PATH', default='./config.ini', help="Path to config")
parser.add_argument('--debugger-host', dest='debugger_host', type=str, metavar='HOST', default=None, help='Remote debugging host (default: 127.0.0.1)')
parser.add_argument('--debugger-port', dest='debugger_port', type=int, metavar='PORT', default=None, help='Remote debugging port (default: 9222)')
parser.add_argument('--debugger-url', dest='debugger_url', type=str, metavar='URL', default=None, help='Browser websocket URL, skips discovery')
parser.add_argument('--host', dest='proxy_host', type=str, metavar='HOST', default=None, help='Host/IP the proxy binds (default: 127.0.0.1)')
parser.add_argument('--port', dest='proxy_port', type=int, metavar='PORT', default=None, help='Port the proxy listens on (default: 9090)')
parser.add_argument('--redirect-https', dest='redirect_https', action=argparse.BooleanOptionalAction, default=None, help='Redirect http:// requests to https:// (default: on)')
parser.add_argument('--settle-delay', dest='settle_delay', type=float, metavar='SECONDS', default=None, help='Longest wait for a new tab to load (default: 1.0)')
parser.add_argument('--command-timeout', dest='command_timeout', type=float, metavar='SECONDS', default=None, help='Deadline for each DevTools command (default: none)')
parser.add_argument('--confdir', dest='confdir', type=str, metavar='PATH', default=None, help='mitmproxy configuration directory (default: ~/.mitmproxy)')
parser.add_argument('--log-level', dest='log_level', type=str, metavar='LEVEL', default=None, help='TRACE, DEBUG, INFO, WARNING or ERROR (default: INFO)')
parser.add_argument("--keyboard", dest='keyboard', action=argparse.BooleanOptionalAction, default=None, help="Enable or disable single-key commands (default: when stdin is a TTY)")


def _from_ini(config: configparser.ConfigParser, key: str, default: Any) -> Any:
    if not config.has_option(SECTION, key):
        return default
    if isinstance(default, bool) or key == "keyboard":
        return config.getboolean(SECTION, key)
    if isinstance(default, int):
        return config.getint(SECTION, key)
    if isinstance(default, float) or key == "command_timeout":
        return config.getfloat(SECTION, key)
    return config.get(SECTION, key)


def load_settings(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    args: argparse.Namespace = parser.parse_args(argv)
    environ = os.environ if environ is None else environ
    config = configparser.ConfigParser()
    config.read(args.config)

    defaults = Settings()
    values: dict[str, Any] = {}
    for key in Settings.__dataclass_fields__:
        cli_value = getattr(args, key, None)
        if cli_value is not None:
            values[key] = cli_value
            continue

        env = ENVIRONMENT.get(key)
        if env is not None and environ.get(env[0]):
            name, convert = env
            try:
                values[key] = convert(environ[name])
            except ValueError as e:
                parser.error(f"invalid value for {name}: {environ[name]!r} ({e})")
            continue

        values[key] = _from_ini(config, key, getattr(defaults, key))

    return Settings(**values)
