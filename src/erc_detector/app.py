"""Flask application exposing the classifier and proxy detector over HTTP."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any

from flask import Flask, Response, jsonify, request

from erc_detector.analysis.classifier import classify_abi, classify_bytecode
from erc_detector.analysis.proxy import ProxyFinding, get_proxy_address, get_proxy_status
from erc_detector.analysis.resolver import get_erc_by_node
from erc_detector.analysis.selectors import get_bytecode_sigs
from erc_detector.analysis.signatures import get_sigs
from erc_detector.chain.rpc import RPCError, get_code
from erc_detector.config import Config, load_config
from erc_detector.errors import InvalidInputError

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("erc_detector.requests")

# Ethereum address pattern: 0x followed by 40 hex chars
ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

LOGGED_PREFIX = "/classify"


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _strategy_args(body: dict[str, Any]) -> tuple[str, float]:
    strategy = str(body.get("strategy", "min_max"))
    threshold = body.get("threshold", 100)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise InvalidInputError("'threshold' must be a number")
    if not 0 <= threshold <= 100:
        raise InvalidInputError("'threshold' must be between 0 and 100")
    return strategy, threshold


def _request_address() -> str:
    address = request.args.get("address", "").strip()
    if not address:
        address = str(_json_body().get("address", "")).strip()
    if not address:
        raise InvalidInputError("Missing 'address' query parameter")
    if not ADDRESS_RE.match(address):
        raise InvalidInputError(f"Invalid Ethereum address: {address}")
    return address


def _configure_request_log_file(app: Flask) -> None:
    """Attach a file handler to the request logger if REQUEST_LOG_PATH is set."""
    log_path = os.environ.get("REQUEST_LOG_PATH", "")
    if not log_path:
        return

    app.config["REQUEST_LOG_PATH"] = log_path
    os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

    # The request logger is process-wide; one handler per file
    target = os.path.abspath(log_path)
    for existing in request_logger.handlers:
        if isinstance(existing, logging.FileHandler) and existing.baseFilename == target:
            return

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    request_logger.addHandler(handler)
    request_logger.setLevel(logging.INFO)
    logger.info("Request logging enabled: %s", log_path)


def _setup_request_logging(app: Flask) -> None:
    """Log every classification request as structured JSON."""

    @app.before_request
    def _start_timer() -> None:
        if request.path.startswith(LOGGED_PREFIX):
            request.environ["_req_start"] = time.monotonic()

    @app.after_request
    def _log_classification(response: Response) -> Response:
        if not request.path.startswith(LOGGED_PREFIX):
            return response

        start = request.environ.get("_req_start")
        duration_ms = (
            round((time.monotonic() - start) * 1000) if start else None
        )

        address = request.args.get("address", "")
        if not address and request.is_json:
            address = str(_json_body().get("address", ""))

        entry: dict[str, object] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "path": request.path,
            "address": address,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "method": request.method,
        }

        if response.status_code == 200:
            data = response.get_json(silent=True)
            if isinstance(data, dict):
                entry["standard"] = data.get("standard")

        request_logger.info(json.dumps(entry, separators=(",", ":")))
        return response


def create_app(config: Config | None = None) -> Flask:
    """Flask application factory.

    Pass a Config object for testing; defaults to loading from environment.
    """
    if config is None:
        config = load_config()

    app = Flask(__name__)
    app.config["ERC_DETECTOR_CONFIG"] = config

    _setup_request_logging(app)
    _configure_request_log_file(app)

    @app.errorhandler(InvalidInputError)
    def invalid_input(e: InvalidInputError):
        return jsonify({"error": str(e)}), 422

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/stats")
    def stats():
        """Request counts per path from the request log."""
        log_path = app.config.get("REQUEST_LOG_PATH", "")
        if not log_path:
            return jsonify({"error": "logging not configured"}), 501

        if not os.path.exists(log_path):
            return jsonify({"total_requests": 0, "by_path": {}, "recent": []})

        total = 0
        by_path: dict[str, int] = {}
        recent: list[dict[str, object]] = []
        with open(log_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                total += 1
                path = str(entry.get("path", ""))
                by_path[path] = by_path.get(path, 0) + 1
                recent.append(entry)

        return jsonify({
            "total_requests": total,
            "by_path": by_path,
            "recent": recent[-20:],
        })

    @app.route("/classify/abi", methods=["POST"])
    def classify_abi_route():
        body = _json_body()
        if "abi" not in body:
            raise InvalidInputError("Missing 'abi' in request body")
        strategy, threshold = _strategy_args(body)
        standard = classify_abi(body["abi"], strategy, threshold=threshold)
        return jsonify({
            "standard": standard,
            "signatures": len(get_sigs(body["abi"])),
        })

    @app.route("/classify/bytecode", methods=["POST"])
    def classify_bytecode_route():
        body = _json_body()
        if "bytecode" not in body:
            raise InvalidInputError("Missing 'bytecode' in request body")
        strategy, threshold = _strategy_args(body)
        result = classify_bytecode(body["bytecode"], strategy, threshold=threshold)
        return jsonify({
            "standard": result if isinstance(result, str) else None,
            "proxy": result.to_dict() if isinstance(result, ProxyFinding) else None,
        })

    @app.route("/classify", methods=["GET", "POST"])
    def classify_address():
        address = _request_address()
        try:
            standard = get_erc_by_node(
                address,
                config.rpc_url,
                max_nodes=config.max_proxy_nodes,
                workers=config.probe_workers,
            )
        except RPCError as e:
            return jsonify({"error": f"RPC error: {e}"}), 502
        return jsonify({"address": address, "standard": standard})

    @app.route("/proxy")
    def proxy():
        address = _request_address()
        try:
            bytecode = get_code(address, config.rpc_url)
        except RPCError as e:
            return jsonify({"error": f"RPC error: {e}"}), 502

        status = get_proxy_status(bytecode)
        implementation = get_proxy_address(
            address, config.rpc_url, bytecode, workers=config.probe_workers
        )
        return jsonify({
            "address": address,
            "implementation": implementation,
            "status": status.to_dict() if status is not None else None,
        })

    @app.route("/signatures", methods=["POST"])
    def signatures():
        body = _json_body()
        if "abi" in body:
            sigs = get_sigs(body["abi"])
        elif "bytecode" in body:
            sigs = get_bytecode_sigs(body["bytecode"])
        else:
            raise InvalidInputError("Provide 'abi' or 'bytecode' in request body")
        return jsonify({"signatures": sorted(sigs)})

    return app
