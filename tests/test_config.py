"""Scenario configuration: loading, validation and building."""

from pathlib import Path

import pytest

from cloudlet_sim.core import CloudletStatus, ConfigurationError, UtilizationModelStochastic
from cloudlet_sim.utils import (
    build_scenario,
    default_scenario_config,
    load_config,
    parse_config,
    save_config,
)

CONFIG_DIR = Path(__file__).parent.parent / "configs"


def test_shipped_config_matches_default():
    assert load_config(CONFIG_DIR / "private_cloud.yaml") == default_scenario_config()


@pytest.mark.parametrize("suffix", [".yaml", ".json"])
def test_save_and_load(tmp_path, suffix):
    config = default_scenario_config()
    path = tmp_path / "nested" / f"scenario{suffix}"

    save_config(config, path)

    assert path.exists()
    assert load_config(path) == config


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_unsupported_format(tmp_path):
    path = tmp_path / "scenario.toml"
    path.write_text("name = 'x'")
    with pytest.raises(ConfigurationError):
        load_config(path)
    with pytest.raises(ConfigurationError):
        save_config(default_scenario_config(), tmp_path / "out.txt")
    assert not (tmp_path / "out.txt").exists()


@pytest.mark.parametrize("content", ["", "datacenter: [unclosed"])
def test_empty_or_malformed_yaml(tmp_path, content):
    path = tmp_path / "broken.yaml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_validation_errors_become_configuration_errors():
    raw = default_scenario_config().model_dump(mode="json")
    raw["vms"][0]["mips"] = -5
    with pytest.raises(ConfigurationError, match="mips"):
        parse_config(raw)

    raw = default_scenario_config().model_dump(mode="json")
    raw["datacenter"]["hosts"] = []
    with pytest.raises(ConfigurationError):
        parse_config(raw)

    raw = default_scenario_config().model_dump(mode="json")
    raw["datacenter"]["allocation_policy"] = "random"
    with pytest.raises(ConfigurationError):
        parse_config(raw)


def test_build_default_scenario():
    scenario = build_scenario(default_scenario_config())

    assert len(scenario.datacenter.hosts) == 1
    assert [vm.vm_id for vm in scenario.vms] == [0, 1]
    assert [c.cloudlet_id for c in scenario.cloudlets] == [0, 1, 2, 3, 4]
    assert all(vm.user_id == scenario.broker.id for vm in scenario.vms)
    assert scenario.datacenter.characteristics.number_of_pes == 8


def test_default_scenario_runs_to_completion():
    scenario = build_scenario(default_scenario_config())
    received = scenario.run()

    assert len(received) == 5
    assert all(c.status == CloudletStatus.SUCCESS for c in received)
    assert all(c.finish_time == pytest.approx(0.1) for c in received)


def stochastic_config(seed):
    raw = default_scenario_config().model_dump(mode="json")
    raw["cloudlets"][0]["utilization_cpu"] = {"model": "stochastic", "seed": seed}
    raw["datacenter"]["scheduling_interval"] = 0.05
    return parse_config(raw)


def test_seeded_runs_are_reproducible():
    first = build_scenario(stochastic_config(42))
    second = build_scenario(stochastic_config(42))
    assert isinstance(first.cloudlets[0].utilization_cpu, UtilizationModelStochastic)

    finish_first = [(c.cloudlet_id, c.finish_time) for c in first.run()]
    finish_second = [(c.cloudlet_id, c.finish_time) for c in second.run()]

    assert finish_first == finish_second
    assert len(finish_first) == 5


def test_oversubscribed_example_config():
    scenario = build_scenario(load_config(CONFIG_DIR / "oversubscribed.yaml"))
    received = scenario.run()

    assert [c.finish_time for c in received] == [pytest.approx(2.0)] * 2


def storage_config(file_size):
    raw = default_scenario_config().model_dump(mode="json")
    raw["datacenter"]["storage"] = [{
        "name": "san",
        "capacity": 1000,
        "max_transfer_rate": 10,
        "files": {"input.dat": file_size},
    }]
    raw["cloudlets"][0]["required_files"] = ["input.dat"]
    return parse_config(raw)


def test_storage_and_required_files_from_config():
    scenario = build_scenario(storage_config(50))

    assert [s.name for s in scenario.datacenter.storage_list] == ["san"]
    assert all(c.required_files == ["input.dat"] for c in scenario.cloudlets)

    received = scenario.run()

    assert all(c.status == CloudletStatus.SUCCESS for c in received)
    assert all(c.exec_start_time == pytest.approx(5.0) for c in received)
    assert all(c.finish_time == pytest.approx(5.1) for c in received)


def test_file_larger_than_storage_rejected():
    with pytest.raises(ConfigurationError, match="input.dat"):
        build_scenario(storage_config(5000))
