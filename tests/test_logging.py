import json
import logging
import os

import pytest

from erc_detector.app import create_app
from fixtures.bytecodes import ERC20_DISPATCHER

ADDRESS = "0x" + "ab" * 20


@pytest.fixture()
def log_path(tmp_path):
    yield str(tmp_path / "logs" / "requests.jsonl")
    # Close file handlers so the temp dir can be removed on every platform
    req_logger = logging.getLogger("erc_detector.requests")
    for h in list(req_logger.handlers):
        if isinstance(h, logging.FileHandler):
            h.close()
            req_logger.removeHandler(h)


@pytest.fixture()
def app_with_logging(test_config, log_path, monkeypatch):
    monkeypatch.setenv("REQUEST_LOG_PATH", log_path)
    app = create_app(config=test_config)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client_logged(app_with_logging):
    return app_with_logging.test_client()


def _entries(log_path):
    with open(log_path) as f:
        return [json.loads(line) for line in f if line.strip()]


def test_log_directory_is_created(app_with_logging, log_path):
    assert os.path.isdir(os.path.dirname(log_path))


def test_address_request_is_logged(client_logged, node, log_path):
    node.set_code(ADDRESS, ERC20_DISPATCHER)
    resp = client_logged.get(f"/classify?address={ADDRESS}")
    assert resp.status_code == 200

    entries = _entries(log_path)
    assert len(entries) == 1
    entry = entries[0]
    assert entry["path"] == "/classify"
    assert entry["address"] == ADDRESS
    assert entry["status"] == 200
    assert entry["standard"] == "ERC20"
    assert entry["method"] == "GET"
    assert "ts" in entry
    assert isinstance(entry["duration_ms"], int)


def test_body_address_is_logged(client_logged, node, log_path):
    client_logged.post("/classify", json={"address": ADDRESS})
    entry = _entries(log_path)[0]
    assert entry["address"] == ADDRESS
    assert entry["method"] == "POST"
    assert entry["standard"] is None


def test_bytecode_request_is_logged(client_logged, log_path):
    client_logged.post("/classify/bytecode", json={"bytecode": ERC20_DISPATCHER})
    entry = _entries(log_path)[0]
    assert entry["path"] == "/classify/bytecode"
    assert entry["address"] == ""
    assert entry["standard"] == "ERC20"


def test_failed_request_is_logged(client_logged, log_path):
    resp = client_logged.get("/classify?address=0xinvalid")
    assert resp.status_code == 422

    entries = _entries(log_path)
    assert len(entries) == 1
    assert entries[0]["status"] == 422
    assert "standard" not in entries[0]


def test_health_not_logged(client_logged, log_path):
    client_logged.get("/health")
    client_logged.post("/signatures", json={"abi": []})
    if os.path.exists(log_path):
        with open(log_path) as f:
            assert f.read().strip() == ""


def test_stats_endpoint(client_logged, node):
    node.set_code(ADDRESS, ERC20_DISPATCHER)
    client_logged.get(f"/classify?address={ADDRESS}")
    client_logged.get(f"/classify?address={ADDRESS}")
    client_logged.post("/classify/abi", json={"abi": []})

    resp = client_logged.get("/stats")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["total_requests"] == 3
    assert data["by_path"] == {"/classify": 2, "/classify/abi": 1}
    assert len(data["recent"]) == 3


def test_stats_skips_garbage_lines(client_logged, log_path):
    with open(log_path, "w") as f:
        f.write('{"path": "/classify"}\nnot json\n\n')
    data = client_logged.get("/stats").get_json()
    assert data["total_requests"] == 1


def test_stats_recent_is_capped(client_logged, log_path):
    with open(log_path, "w") as f:
        for i in range(25):
            f.write(json.dumps({"path": "/classify/abi", "n": i}) + "\n")
    data = client_logged.get("/stats").get_json()
    assert data["total_requests"] == 25
    assert len(data["recent"]) == 20
    assert data["recent"][-1]["n"] == 24


def test_stats_empty_when_no_requests(client_logged):
    resp = client_logged.get("/stats")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["total_requests"] == 0
    assert data["by_path"] == {}


def test_stats_returns_501_without_log_path(test_config, monkeypatch):
    monkeypatch.delenv("REQUEST_LOG_PATH", raising=False)
    app = create_app(config=test_config)
    app.config["TESTING"] = True
    resp = app.test_client().get("/stats")
    assert resp.status_code == 501


def test_repeated_apps_share_one_handler(app_with_logging, test_config, node, log_path):
    second = create_app(config=test_config)
    second.config["TESTING"] = True
    handlers = [
        h for h in logging.getLogger("erc_detector.requests").handlers
        if isinstance(h, logging.FileHandler)
    ]
    assert len(handlers) == 1

    second.test_client().get(f"/classify?address={ADDRESS}")
    assert len(_entries(log_path)) == 1
