import io
import json

from market_provisioner.cli import console_main, provision_main
from market_provisioner.provisioning.journal import ProvisioningJournal


def registry_file(tmp_path):
    return tmp_path / ".env.local.json"


def test_provision_twice_exits_zero_and_records_once(tmp_path, capsys):
    args = ["--deployments-dir", str(tmp_path), "--log-level", "WARNING"]

    assert provision_main(args) == 0
    first = registry_file(tmp_path).read_text(encoding="utf-8")
    assert provision_main(args) == 0

    out = capsys.readouterr().out
    assert "provisioned market Test_StableCoin1_Pool on local" in out
    assert "already exists" in out
    assert registry_file(tmp_path).read_text(encoding="utf-8") == first

    data = json.loads(first)
    assert [m["marketName"] for m in data["markets"]] == ["Test_StableCoin1_Pool"]
    assert data["markets"][0]["marketProtectionType"] == "DePeg Safety"
    assert (tmp_path / ".localchain.local.json").exists()


def test_profile_file_adds_a_second_market(tmp_path):
    profile = tmp_path / "pool-b.json"
    profile.write_text(
        json.dumps(
            {
                "marketName": "Pool-B",
                "marketDescription": "Second pool",
                "marketPaymentToken": "USDC",
                "marketProtectionType": "DePeg Safety",
                "network": "Arbitrum",
            }
        ),
        encoding="utf-8",
    )
    base = ["--deployments-dir", str(tmp_path)]

    assert provision_main(base) == 0
    assert provision_main(base + ["--profile", str(profile)]) == 0

    data = json.loads(registry_file(tmp_path).read_text(encoding="utf-8"))
    assert [m["marketName"] for m in data["markets"]] == ["Test_StableCoin1_Pool", "Pool-B"]


def test_incomplete_profile_exits_one(tmp_path, capsys):
    profile = tmp_path / "bad.json"
    profile.write_text(json.dumps({"marketName": "Pool-C"}), encoding="utf-8")

    assert provision_main(["--deployments-dir", str(tmp_path), "--profile", str(profile)]) == 1
    assert "InvalidProfile" in capsys.readouterr().out
    assert not registry_file(tmp_path).exists()


def test_corrupt_registry_exits_one_before_constructing(tmp_path, capsys):
    registry_file(tmp_path).write_text(json.dumps({"network": "local", "globalsViewer": "0x1"}), encoding="utf-8")

    assert provision_main(["--deployments-dir", str(tmp_path)]) == 1

    assert "RegistryCorrupt" in capsys.readouterr().out
    assert not (tmp_path / ".localchain.local.json").exists()


def test_crashed_pass_needs_acknowledgement(tmp_path, capsys):
    journal = ProvisioningJournal(path=tmp_path / ".journal.local.jsonl")
    pass_id = journal.start_pass("Test_StableCoin1_Pool")
    journal.log(
        {
            "event": "unit_constructed",
            "pass_id": pass_id,
            "market": "Test_StableCoin1_Pool",
            "kind": "MetaDefenderMarketsRegistry",
            "address": "0xorphan",
        }
    )
    base = ["--deployments-dir", str(tmp_path)]

    assert provision_main(base) == 1
    out = capsys.readouterr().out
    assert "UnresolvedPass" in out
    assert "0xorphan" in out

    assert provision_main(base + ["--acknowledge-crashed-pass"]) == 0
    assert registry_file(tmp_path).exists()


def test_console_attaches_to_the_provisioned_market(tmp_path, monkeypatch, capsys):
    base = ["--deployments-dir", str(tmp_path)]
    assert provision_main(base) == 0
    before = registry_file(tmp_path).read_text(encoding="utf-8")
    capsys.readouterr()

    monkeypatch.setattr("sys.stdin", io.StringIO("1\nGive Me Some Test Token\nQuery My Account\nExit\n"))
    assert console_main(base) == 0

    out = capsys.readouterr().out
    assert "You have the balance of 10010000 USDTs" in out
    assert registry_file(tmp_path).read_text(encoding="utf-8") == before


def test_console_stops_cleanly_at_end_of_input(tmp_path, monkeypatch):
    base = ["--deployments-dir", str(tmp_path)]
    assert provision_main(base) == 0

    monkeypatch.setattr("sys.stdin", io.StringIO("1\nMy Address\n"))
    assert console_main(base) == 0


def test_console_without_markets_exits_one(tmp_path, capsys):
    assert console_main(["--deployments-dir", str(tmp_path)]) == 1
    assert "no markets recorded" in capsys.readouterr().out


def test_invalid_network_identifier_exits_one(tmp_path, capsys):
    base = ["--deployments-dir", str(tmp_path), "--network", "a/b"]

    assert provision_main(base) == 1
    assert "ValueError: invalid network identifier" in capsys.readouterr().out
    assert console_main(base) == 1
    assert "ValueError: invalid network identifier" in capsys.readouterr().out


def test_unreadable_local_environment_exits_one(tmp_path, capsys):
    (tmp_path / ".localchain.local.json").write_text("{not json", encoding="utf-8")
    base = ["--deployments-dir", str(tmp_path)]

    assert provision_main(base) == 1
    assert "JSONDecodeError" in capsys.readouterr().out
    assert not registry_file(tmp_path).exists()

    assert console_main(base) == 1
    assert "JSONDecodeError" in capsys.readouterr().out
