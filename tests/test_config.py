import json
import tempfile
import unittest
from pathlib import Path

from cloudsim.core.workload import CloudletStatus, UtilizationModelConstant
from cloudsim.scheduling.allocation import BestFitAllocationPolicy, PlacementPolicy
from cloudsim.scheduling.cloudlet_scheduler import CloudletSchedulerSpaceShared
from cloudsim.utils.config import ScenarioConfig, build_simulation, load_config

CONFIGS_DIR = Path(__file__).resolve().parent.parent / "configs"


def minimal_scenario(**overrides):
    data = {
        "datacenters": [{"name": "dc"}],
        "brokers": [
            {
                "name": "tenant",
                "vms": [{"vm_id": 0}],
                "cloudlets": [{"cloudlet_id": 0, "length": 1000, "vm_id": 0}],
            }
        ],
    }
    data.update(overrides)
    return data


class TestLoadConfig(unittest.TestCase):
    def test_yaml_scenario(self):
        scenario = load_config(CONFIGS_DIR / "multi_tenant.yaml")

        self.assertEqual(scenario.name, "multi_tenant_yaml")
        self.assertEqual(len(scenario.brokers), 2)
        self.assertEqual(scenario.datacenters[0].hosts[0].count, 2)
        self.assertEqual(scenario.datacenters[0].allocation_policy, PlacementPolicy.FIRST_FIT)
        self.assertEqual(scenario.simulation.random_seed, 42)
        self.assertEqual(scenario.carbon_factor, 0.4)

    def test_json_scenario(self):
        scenario = load_config(str(CONFIGS_DIR / "carbon_aware.json"))

        self.assertEqual(scenario.name, "carbon_aware_json")
        self.assertEqual(scenario.brokers[0].cloudlets[0].length, 400000)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(CONFIGS_DIR / "does_not_exist.yaml")

    def test_unsupported_suffix(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "scenario.txt"
            path.write_text("name: x")
            with self.assertRaises(ValueError):
                load_config(path)

    def test_invalid_content(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "scenario.json"
            data = minimal_scenario()
            data["brokers"][0]["vms"][0]["mips"] = -5
            path.write_text(json.dumps(data))
            with self.assertRaises(ValueError):
                load_config(path)

    def test_defaults(self):
        scenario = ScenarioConfig.model_validate(minimal_scenario())

        self.assertEqual(scenario.simulation.min_time_between_events, 0.01)
        self.assertEqual(scenario.simulation.network_latency, 0.0)
        self.assertEqual(scenario.datacenters[0].hosts[0].mips, 1000)
        self.assertEqual(scenario.datacenters[0].cost_per_sec, 3.0)

    def test_requires_brokers(self):
        with self.assertRaises(ValueError):
            ScenarioConfig.model_validate(minimal_scenario(brokers=[]))


class TestBuildSimulation(unittest.TestCase):
    def test_builds_entities(self):
        data = minimal_scenario()
        data["datacenters"][0]["allocation_policy"] = "best_fit"
        data["datacenters"][0]["hosts"] = [{"count": 3, "pes": 2}]
        data["brokers"][0]["vms"][0]["scheduler"] = "space_shared"
        data["brokers"][0]["cloudlets"][0]["utilization_cpu"] = {"kind": "constant", "fraction": 0.25}
        scenario = ScenarioConfig.model_validate(data)

        simulation, datacenters, brokers = build_simulation(scenario)

        self.assertEqual(simulation.num_tenants, 1)
        self.assertEqual(len(datacenters[0].hosts), 3)
        self.assertEqual([h.host_id for h in datacenters[0].hosts], [0, 1, 2])
        self.assertIsInstance(datacenters[0].allocation_policy, BestFitAllocationPolicy)
        vm = brokers[0].vm_list[0]
        self.assertIsInstance(vm.cloudlet_scheduler, CloudletSchedulerSpaceShared)
        self.assertEqual(vm.broker_id, brokers[0].id)
        cloudlet = brokers[0].cloudlet_list[0]
        self.assertIsInstance(cloudlet.utilization_cpu, UtilizationModelConstant)

    def test_does_not_mutate_scenario(self):
        scenario = ScenarioConfig.model_validate(minimal_scenario())
        simulation, _, _ = build_simulation(scenario)

        self.assertIsNot(simulation.config, scenario.simulation)

    def test_yaml_scenario_runs(self):
        simulation, _, brokers = build_simulation(load_config(CONFIGS_DIR / "multi_tenant.yaml"))

        simulation.start()

        first, second = brokers
        finish = {c.cloudlet_id: c.exec_finish_time for c in simulation.received_cloudlets(first)}
        self.assertDictEqual(finish, {0: 400.0, 1: 200.0, 2: 400.0})
        only = simulation.received_cloudlets(second)
        self.assertEqual(len(only), 1)
        self.assertEqual(only[0].exec_finish_time, 800.0)
        for broker in brokers:
            for cloudlet in simulation.received_cloudlets(broker):
                self.assertEqual(cloudlet.status, CloudletStatus.SUCCESS)
                self.assertEqual(cloudlet.broker_id, broker.id)
        self.assertListEqual(simulation.errors, [])


if __name__ == "__main__":
    unittest.main()
