import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from bitcoin_tui import __version__
from bitcoin_tui.errors import ConfigError
from bitcoin_tui.services.rpc import RpcConfig

NETWORK_PORTS = {"main": 8332, "testnet3": 18332, "signet": 38332, "regtest": 18443}
COOKIE_SUBDIRS = {"main": "", "testnet3": "testnet3/", "signet": "signet/", "regtest": "regtest/"}


@dataclass
class AppConfig:
    rpc: RpcConfig = field(default_factory=RpcConfig)
    network: str = "main"
    refresh_secs: int = 5
    log_file: Optional[str] = None
    log_level: str = "INFO"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bitcoin-tui",
        description="Terminal UI for Bitcoin Core",
        add_help=False,
    )
    conn = parser.add_argument_group("connection")
    conn.add_argument("-h", "--host", help="RPC host (default: 127.0.0.1)")
    conn.add_argument("-p", "--port", type=int, help="RPC port (default: 8332)")

    auth = parser.add_argument_group("authentication (cookie auth is used by default)")
    auth.add_argument("-c", "--cookie", help="path to .cookie file (auto-detected if omitted)")
    auth.add_argument("-d", "--datadir", help="Bitcoin data directory for cookie lookup")
    auth.add_argument("--conf", help="path to bitcoin.conf")
    auth.add_argument("-u", "--user", help="RPC username (disables cookie auth)")
    auth.add_argument("-P", "--password", help="RPC password (disables cookie auth)")

    net = parser.add_argument_group("network")
    chain = net.add_mutually_exclusive_group()
    chain.add_argument("--testnet", dest="network", action="store_const", const="testnet3")
    chain.add_argument("--regtest", dest="network", action="store_const", const="regtest")
    chain.add_argument("--signet", dest="network", action="store_const", const="signet")

    display = parser.add_argument_group("display")
    display.add_argument("-r", "--refresh", type=int, default=5, help="refresh interval in seconds (default: 5)")
    display.add_argument("--log-file", help="write a debug log to this file")
    display.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    display.add_argument("-v", "--version", action="version", version=f"bitcoin-tui {__version__}")
    display.add_argument("--help", action="help", help="show this help and exit")
    return parser


def default_datadir() -> Path:
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "Bitcoin"
    return home / ".bitcoin"


def cookie_default_path(network: str, datadir: Optional[str]) -> Path:
    base = Path(datadir).expanduser() if datadir else default_datadir()
    return base / f"{COOKIE_SUBDIRS.get(network, '')}.cookie"


def read_cookie(path: Path) -> tuple[str, str]:
    """Parse a ``__cookie__:<password>`` file into (user, password)."""
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigError(f"Cannot open cookie file: {path}") from exc
    line = text.splitlines()[0].rstrip("\r") if text else ""
    if not line:
        raise ConfigError(f"Cookie file is empty: {path}")
    if ":" not in line:
        raise ConfigError(f"Invalid cookie file (no ':' found): {path}")
    user, password = line.split(":", 1)
    return user, password


def read_bitcoin_conf(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not path.exists():
        return values
    try:
        text = path.read_text(errors="ignore")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    for line in text.splitlines():
        line = line.strip()
        # keys under a [section] header only apply to that network
        if line.startswith("["):
            break
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().lower()
        if key in {"rpcuser", "rpcpassword", "rpcport", "rpcconnect"}:
            values[key] = value.strip()
    return values


def load_config(argv: Optional[list[str]] = None, environ: Optional[dict] = None) -> AppConfig:
    args = build_parser().parse_args(argv)
    env = os.environ if environ is None else environ

    network = args.network or "main"
    datadir = args.datadir or env.get("BITCOIN_DATADIR")
    conf_path = args.conf or env.get("BITCOIN_CONF")
    if conf_path:
        conf_file = Path(conf_path).expanduser()
    else:
        conf_file = (Path(datadir).expanduser() if datadir else default_datadir()) / "bitcoin.conf"
    conf = read_bitcoin_conf(conf_file)

    host = args.host or env.get("BITCOIN_RPC_HOST") or conf.get("rpcconnect") or "127.0.0.1"
    port_value = args.port or env.get("BITCOIN_RPC_PORT") or conf.get("rpcport") or NETWORK_PORTS[network]
    try:
        port = int(port_value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid RPC port: {port_value}") from exc

    user = args.user or env.get("BITCOIN_RPC_USER") or conf.get("rpcuser") or ""
    password = args.password or env.get("BITCOIN_RPC_PASSWORD") or conf.get("rpcpassword") or ""

    if not (user or password):
        if args.cookie:
            user, password = read_cookie(Path(args.cookie).expanduser())
        else:
            try:
                user, password = read_cookie(cookie_default_path(network, datadir))
            except ConfigError:
                # the RPC layer reports the resulting auth failure
                pass

    if args.refresh <= 0:
        raise ConfigError("Refresh interval must be positive")

    return AppConfig(
        rpc=RpcConfig(host=host, port=port, user=user, password=password),
        network=network,
        refresh_secs=args.refresh,
        log_file=args.log_file or env.get("BITCOIN_TUI_LOG"),
        log_level=args.log_level,
    )
