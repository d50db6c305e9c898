"""Fake JSON-RPC node backed by responses.

Requests are answered by method and params rather than by arrival order, so
proxy probes issued concurrently from a thread pool get deterministic
answers.
"""

from __future__ import annotations

import json

import responses

ZERO_WORD = "0x" + "0" * 64


def address_word(address: str) -> str:
    """Left-pad a 20-byte address into a 32-byte storage/return word."""
    return "0x" + "0" * 24 + address.lower().removeprefix("0x")


class FakeNode:
    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url
        self.code: dict[str, str] = {}
        self.storage: dict[tuple[str, str], str] = {}
        self.calls: dict[tuple[str, str], str] = {}
        self.failing: set[str] = set()  # addresses whose code fetch errors
        self.requests: list[tuple[str, list]] = []

    def set_code(self, address: str, bytecode: str) -> None:
        self.code[address.lower()] = bytecode

    def set_storage(self, address: str, slot: str, word: str) -> None:
        self.storage[(address.lower(), slot.lower())] = word

    def set_call(self, address: str, data: str, result: str) -> None:
        self.calls[(address.lower(), data.lower())] = result

    def methods(self, method: str) -> list[list]:
        return [params for m, params in self.requests if m == method]

    def install(self, mock: responses.RequestsMock) -> None:
        mock.add_callback(
            responses.POST,
            self.rpc_url,
            callback=self._callback,
            content_type="application/json",
        )

    def _callback(self, request):
        payload = json.loads(request.body)
        method, params = payload["method"], payload["params"]
        self.requests.append((method, params))

        if method == "eth_getCode":
            address = params[0].lower()
            if address in self.failing:
                return self._error(-32000, "header not found")
            return self._result(self.code.get(address, "0x"))
        if method == "eth_getStorageAt":
            key = (params[0].lower(), params[1].lower())
            return self._result(self.storage.get(key, ZERO_WORD))
        if method == "eth_call":
            key = (params[0]["to"].lower(), params[0]["data"].lower())
            if key not in self.calls:
                return self._error(3, "execution reverted")
            return self._result(self.calls[key])
        return self._error(-32601, "method not found")

    @staticmethod
    def _result(result: str):
        return (200, {}, json.dumps({"jsonrpc": "2.0", "id": 1, "result": result}))

    @staticmethod
    def _error(code: int, message: str):
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}}
        return (200, {}, json.dumps(body))
