import threading

import pytest

from bitcoin_tui.errors import ProtocolError
from bitcoin_tui.models import DashboardSnapshot
from bitcoin_tui.services.state import Guarded, WakeSignal


class FakeRpc:
    """Scripted stand-in for RpcClient.

    ``responses`` maps a method name to a value, an exception instance, or a
    callable taking the params list. Unknown methods raise ProtocolError.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self._lock = threading.Lock()

    def call(self, method, params=None):
        with self._lock:
            self.calls.append((method, params))
        if method not in self.responses:
            raise ProtocolError(f"Method not found: {method}", -32601)
        response = self.responses[method]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(params)
        return response

    def methods(self):
        return [m for m, _ in self.calls]


def chain_info(blocks=884231, difficulty=1.0e14, **extra):
    info = {
        "chain": "main",
        "blocks": blocks,
        "headers": blocks,
        "difficulty": difficulty,
        "verificationprogress": 0.99999,
        "pruned": False,
        "initialblockdownload": False,
        "bestblockhash": "00" * 32,
    }
    info.update(extra)
    return info


NETWORK_INFO = {
    "connections": 10,
    "connections_in": 2,
    "connections_out": 8,
    "subversion": "/Satoshi:27.0.0/",
    "protocolversion": 70016,
    "networkactive": True,
    "relayfee": 0.00001,
}

MEMPOOL_INFO = {
    "size": 1500,
    "bytes": 750000,
    "usage": 3000000,
    "maxmempool": 300000000,
    "mempoolminfee": 0.00001,
    "total_fee": 0.25,
}

PEER_INFO = [
    {"id": 1, "addr": "1.2.3.4:8333", "network": "ipv4", "inbound": False, "pingtime": 0.05,
     "bytessent": 100, "bytesrecv": 200, "version": 70016, "synced_blocks": 884231},
    {"id": 7, "addr": "[::1]:51234", "network": "ipv6", "inbound": True},
]


def block_stats(params):
    height = params[0]
    return {"height": height, "txs": 3000, "total_size": 1500000, "total_weight": 3990000,
            "time": 1700000000 + height}


def node_responses(blocks=884231, **overrides):
    responses = {
        "getblockchaininfo": chain_info(blocks),
        "getnetworkinfo": NETWORK_INFO,
        "getmempoolinfo": MEMPOOL_INFO,
        "getpeerinfo": PEER_INFO,
        "getblockstats": block_stats,
    }
    responses.update(overrides)
    return responses


@pytest.fixture
def store():
    return Guarded(DashboardSnapshot())


@pytest.fixture
def wake():
    return WakeSignal()


@pytest.fixture
def shutdown():
    return threading.Event()
