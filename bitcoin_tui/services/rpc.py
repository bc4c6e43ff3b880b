import itertools
import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

import requests

from bitcoin_tui.errors import AuthError, ParseError, ProtocolError, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RpcConfig:
    host: str = "127.0.0.1"
    port: int = 8332
    user: str = ""
    password: str = ""
    timeout: float = 10

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


def value_or(obj: Any, key: str, default: Any) -> Any:
    """Return ``obj[key]`` coerced to the type of ``default``.

    Missing keys, nulls and values of an incompatible JSON type yield the
    default, so a sparse or older node response never breaks a refresh.
    """
    if not isinstance(obj, dict):
        return default
    value = obj.get(key)
    if value is None:
        return default
    if isinstance(default, bool):
        return value if isinstance(value, bool) else default
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return int(value)
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return float(value)
    if isinstance(default, str):
        return value if isinstance(value, str) else default
    return value


class RpcClient:
    def __init__(self, config: RpcConfig) -> None:
        self.config = config
        self._ids = itertools.count(1)
        self._session = requests.Session()

    def with_timeout(self, seconds: float) -> "RpcClient":
        return RpcClient(replace(self.config, timeout=seconds))

    def close(self) -> None:
        self._session.close()

    def call(self, method: str, params: Optional[list] = None) -> Any:
        payload = {
            "jsonrpc": "1.1",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }
        try:
            response = self._session.post(
                self.config.url,
                auth=(self.config.user, self.config.password),
                json=payload,
                timeout=self.config.timeout,
            )
        except requests.Timeout as exc:
            raise TransportError(f"{method}: timed out after {self.config.timeout}s") from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"connect to {self.config.host}:{self.config.port} failed: {exc}"
            ) from exc

        if response.status_code == 401:
            raise AuthError("Authentication failed, check your RPC credentials")
        # Bitcoin Core answers RPC-level errors with 500 and a JSON body.
        if response.status_code not in (200, 500):
            raise TransportError(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(f"JSON parse error: {exc}") from exc

        if not isinstance(data, dict):
            raise ProtocolError("Malformed JSON-RPC response")
        error = data.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise ProtocolError(str(error.get("message", "RPC error")), error.get("code"))
            raise ProtocolError(str(error))
        if "result" not in data:
            raise ProtocolError("JSON-RPC response has no result")
        logger.debug("rpc %s ok", method)
        return data["result"]
