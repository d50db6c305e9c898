import io
import json

import pytest

from erc_detector.analysis.proxy import EIP_1967_IMPL_SLOT
from erc_detector.analysis.standards import ABI_DIR
from erc_detector.cli import EXIT_INVALID_INPUT, EXIT_RPC_ERROR, build_parser, main
from conftest import RPC_URL
from fixtures.bytecodes import (
    DIRECT_PROXY,
    DIRECT_PROXY_TARGET,
    ERC20_DISPATCHER,
    PROXY_CONTRACT,
    TRANSFER_TOPIC,
)
from fixtures.node import address_word

PROXY = "0x" + "ab" * 20
IMPL = "0x" + "cd" * 20


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("RPC_URL", RPC_URL)
    for name in ("MAX_PROXY_NODES", "PROBE_WORKERS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _out(capsys):
    return capsys.readouterr().out.strip()


def test_abi_file(capsys):
    assert main(["abi", str(ABI_DIR / "ERC721.json")]) == 0
    assert _out(capsys) == "ERC721"


def test_abi_from_stdin(capsys, monkeypatch):
    with open(ABI_DIR / "ERC1155.json", encoding="utf-8") as f:
        monkeypatch.setattr("sys.stdin", io.StringIO(f.read()))
    assert main(["abi", "-"]) == 0
    assert _out(capsys) == "ERC1155"


def test_abi_inline_json(capsys):
    assert main(["abi", json.dumps([])]) == 0
    assert _out(capsys) == "none"


def test_abi_percent(capsys, tmp_path):
    with open(ABI_DIR / "ERC20.json", encoding="utf-8") as f:
        abi = [e for e in json.load(f) if e["name"] != "transfer"]
    path = tmp_path / "token.json"
    path.write_text(json.dumps(abi))

    assert main(["abi", str(path)]) == 0
    assert _out(capsys) == "none"
    assert main(["abi", str(path), "--percent", "90"]) == 0
    assert _out(capsys) == "ERC20"


def test_abi_unparseable(capsys, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{")
    assert main(["abi", str(path)]) == EXIT_INVALID_INPUT
    assert "Cannot parse ABI" in capsys.readouterr().err


def test_bytecode_inline(capsys):
    assert main(["bytecode", "0x" + ERC20_DISPATCHER]) == 0
    assert _out(capsys) == "ERC20"


def test_bytecode_file_with_newline(capsys, tmp_path):
    path = tmp_path / "runtime.hex"
    path.write_text(ERC20_DISPATCHER + "\n")
    assert main(["bytecode", str(path), "--percent", "70"]) == 0
    assert _out(capsys) == "ERC20"


def test_bytecode_proxy_finding_is_json(capsys):
    assert main(["bytecode", DIRECT_PROXY]) == 0
    assert json.loads(_out(capsys)) == {
        "kind": "direct",
        "target": DIRECT_PROXY_TARGET,
        "slots": [],
    }


def test_bytecode_not_hex(capsys):
    assert main(["bytecode", "0xnothex"]) == EXIT_INVALID_INPUT
    assert capsys.readouterr().err.startswith("error:")


def test_sigs_abi(capsys):
    assert main(["sigs", "--abi", str(ABI_DIR / "ERC20-min.json")]) == 0
    lines = _out(capsys).splitlines()
    assert len(lines) == 8
    assert lines == sorted(lines)


def test_sigs_bytecode_describe(capsys):
    assert main(["sigs", "--bytecode", "63a9059cbb63deadbeef", "--describe"]) == 0
    assert _out(capsys).splitlines() == [
        "a9059cbb transfer(address,uint256)",
        "deadbeef ?",
    ]


def test_sigs_bytecode(capsys):
    assert main(["sigs", "--bytecode", "7f" + TRANSFER_TOPIC]) == 0
    assert _out(capsys) == TRANSFER_TOPIC


def test_sigs_requires_a_source():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["sigs"])


def test_proxy_command(capsys, node):
    node.set_code(PROXY, PROXY_CONTRACT)
    node.set_storage(PROXY, EIP_1967_IMPL_SLOT, address_word(IMPL))
    assert main(["proxy", PROXY]) == 0
    assert _out(capsys) == IMPL


def test_proxy_command_not_a_proxy(capsys, node):
    assert main(["proxy", PROXY]) == 0
    assert _out(capsys) == "none"


def test_address_command(capsys, node):
    node.set_code(PROXY, PROXY_CONTRACT)
    node.set_storage(PROXY, EIP_1967_IMPL_SLOT, address_word(IMPL))
    node.set_code(IMPL, ERC20_DISPATCHER)
    assert main(["address", PROXY, "--max-nodes", "2"]) == 0
    assert _out(capsys) == "ERC20"


def test_address_command_rpc_error(capsys, node):
    node.failing.add(PROXY)
    assert main(["address", PROXY]) == EXIT_RPC_ERROR
    assert "RPC error" in capsys.readouterr().err


def test_rpc_url_flag_overrides_env(capsys, node, monkeypatch):
    monkeypatch.setenv("RPC_URL", "https://unused.example.org")
    node.set_code(PROXY, ERC20_DISPATCHER)
    assert main(["address", PROXY, "--rpc-url", RPC_URL]) == 0
    assert _out(capsys) == "ERC20"


def test_bad_config(capsys, monkeypatch):
    monkeypatch.setenv("PROBE_WORKERS", "zero")
    assert main(["abi", "[]"]) == EXIT_INVALID_INPUT
    assert "PROBE_WORKERS" in capsys.readouterr().err
