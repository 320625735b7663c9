import unittest

from cloudsim.core.exceptions import InsufficientCapacity, PlacementFailed
from cloudsim.core.provisioners import Pe
from cloudsim.core.resources import Vm
from cloudsim.scheduling.allocation import (
    BestFitAllocationPolicy,
    FirstFitAllocationPolicy,
    PlacementPolicy,
    SpreadAllocationPolicy,
    create_allocation_policy,
)
from cloudsim.scheduling.vm_scheduler import VmSchedulerTimeShared

from helpers import make_host


def make_vm(vm_id, mips=1000, pes=1, ram=512, bw=1000, size=10000, broker_id=0):
    return Vm(vm_id, mips, pes=pes, ram=ram, bw=bw, size=size, broker_id=broker_id)


class TestHostPlacement(unittest.TestCase):
    def test_vm_create_binds_and_allocates(self):
        host = make_host(pes=2)
        vm = make_vm(0)

        host.vm_create(vm)

        self.assertIs(vm.host, host)
        self.assertEqual(host.ram_provisioner.allocated, 512)
        self.assertEqual(host.bw_provisioner.allocated, 1000)
        self.assertEqual(host.storage_provisioner.allocated, 10000)
        self.assertListEqual(host.vm_scheduler.get_allocated_mips(vm), [1000])

    def test_failed_create_rolls_back(self):
        host = make_host(ram=2048, bw=500)
        vm = make_vm(0, bw=1000)

        with self.assertRaises(InsufficientCapacity):
            host.vm_create(vm)

        self.assertEqual(host.ram_provisioner.allocated, 0)
        self.assertEqual(host.bw_provisioner.allocated, 0)
        self.assertEqual(host.storage_provisioner.allocated, 0)
        self.assertEqual(host.vm_scheduler.available_mips, 1000)
        self.assertFalse(vm.is_bound)

    def test_pe_shortage_rolls_back(self):
        host = make_host(pes=1)
        host.vm_create(make_vm(0))

        with self.assertRaises(InsufficientCapacity):
            host.vm_create(make_vm(1))
        self.assertEqual(host.ram_provisioner.allocated, 512)

    def test_vm_destroy_twice(self):
        host = make_host()
        vm = make_vm(0)
        host.vm_create(vm)

        host.vm_destroy(vm)
        host.vm_destroy(vm)

        self.assertFalse(vm.is_bound)
        self.assertEqual(host.ram_provisioner.allocated, 0)
        self.assertEqual(host.vm_scheduler.available_mips, 1000)

    def test_utilization(self):
        host = make_host(pes=2, ram=2048)
        host.vm_create(make_vm(0))

        usage = host.get_utilization()

        self.assertEqual(usage.ram_utilization, 0.25)
        self.assertEqual(usage.cpu_utilization, 0.0)


class TestVmSchedulerTimeShared(unittest.TestCase):
    def test_oversubscription_scales_shares(self):
        pes = [Pe(0, 1000)]
        scheduler = VmSchedulerTimeShared(pes, oversubscription=True)
        first, second = make_vm(0), make_vm(1)

        scheduler.allocate_pes_for_vm(first)
        self.assertListEqual(scheduler.get_allocated_mips(first), [1000])

        scheduler.allocate_pes_for_vm(second)
        self.assertListEqual(scheduler.get_allocated_mips(first), [500])
        self.assertListEqual(scheduler.get_allocated_mips(second), [500])
        self.assertAlmostEqual(scheduler.available_mips, 0)

        scheduler.deallocate_pes_for_vm(first)
        self.assertListEqual(scheduler.get_allocated_mips(second), [1000])

    def test_without_oversubscription(self):
        scheduler = VmSchedulerTimeShared([Pe(0, 1000)])
        scheduler.allocate_pes_for_vm(make_vm(0, mips=600))

        self.assertFalse(scheduler.can_host(make_vm(1, mips=600)))
        self.assertTrue(scheduler.can_host(make_vm(2, mips=400)))

    def test_multi_pe_vm(self):
        pes = [Pe(i, 1000) for i in range(4)]
        scheduler = VmSchedulerTimeShared(pes)
        vm = make_vm(0, pes=2)

        scheduler.allocate_pes_for_vm(vm)

        self.assertListEqual(scheduler.get_allocated_mips(vm), [1000, 1000])
        self.assertEqual(scheduler.number_of_free_pes, 2)
        self.assertFalse(scheduler.can_host(make_vm(1, pes=5)))
        self.assertFalse(scheduler.can_host(make_vm(2, mips=1500)))


class TestAllocationPolicies(unittest.TestCase):
    def test_first_fit_uses_construction_order(self):
        hosts = [make_host(i, pes=2) for i in range(3)]
        policy = FirstFitAllocationPolicy(hosts)

        placed = [policy.allocate_host_for_vm(make_vm(i)) for i in range(3)]

        self.assertListEqual([h.host_id for h in placed], [0, 0, 1])
        self.assertEqual(policy.placement_policy, PlacementPolicy.FIRST_FIT)

    def test_placement_failure_leaves_no_trace(self):
        hosts = [make_host(0, ram=256), make_host(1, bw=10)]
        policy = FirstFitAllocationPolicy(hosts)
        vm = make_vm(0)

        with self.assertRaises(PlacementFailed):
            policy.allocate_host_for_vm(vm)

        for host in hosts:
            self.assertEqual(host.ram_provisioner.allocated, 0)
            self.assertEqual(host.bw_provisioner.allocated, 0)
            self.assertEqual(host.storage_provisioner.allocated, 0)
        self.assertIsNone(policy.get_host(vm))

    def test_ram_never_exceeds_capacity(self):
        hosts = [make_host(i, pes=8, mips=1000, ram=2048, bw=4000) for i in range(2)]
        policy = FirstFitAllocationPolicy(hosts)

        for vm_id in range(12):
            try:
                policy.allocate_host_for_vm(make_vm(vm_id, ram=700))
            except PlacementFailed:
                pass

        for host in hosts:
            self.assertLessEqual(host.ram_provisioner.allocated, host.ram)
            self.assertLessEqual(host.bw_provisioner.allocated, host.bw)
        self.assertEqual(len(policy.vm_table), 4)

    def test_deallocate_is_idempotent(self):
        host = make_host()
        policy = FirstFitAllocationPolicy([host])
        vm = make_vm(0)
        policy.allocate_host_for_vm(vm)

        policy.deallocate_host_for_vm(vm)
        state = (host.ram_provisioner.allocated, host.vm_scheduler.available_mips, dict(policy.vm_table))
        policy.deallocate_host_for_vm(vm)

        self.assertEqual(
            (host.ram_provisioner.allocated, host.vm_scheduler.available_mips, dict(policy.vm_table)),
            state,
        )

    def test_double_placement_rejected(self):
        policy = FirstFitAllocationPolicy([make_host(pes=2)])
        vm = make_vm(0)
        policy.allocate_host_for_vm(vm)

        with self.assertRaises(PlacementFailed):
            policy.allocate_host_for_vm(vm)

    def test_best_fit_prefers_fullest_host(self):
        hosts = [make_host(0, pes=4), make_host(1, pes=2)]
        policy = BestFitAllocationPolicy(hosts)

        host = policy.allocate_host_for_vm(make_vm(0))

        self.assertEqual(host.host_id, 1)

    def test_spread_prefers_most_free_pes(self):
        hosts = [make_host(0, pes=2), make_host(1, pes=2)]
        policy = SpreadAllocationPolicy(hosts)

        first = policy.allocate_host_for_vm(make_vm(0))
        second = policy.allocate_host_for_vm(make_vm(1))

        self.assertEqual(first.host_id, 0)
        self.assertEqual(second.host_id, 1)

    def test_factory(self):
        hosts = [make_host()]
        self.assertIsInstance(create_allocation_policy("best_fit", hosts), BestFitAllocationPolicy)
        self.assertIsInstance(create_allocation_policy(PlacementPolicy.SPREAD, hosts), SpreadAllocationPolicy)
        with self.assertRaises(ValueError):
            create_allocation_policy("random", hosts)


if __name__ == "__main__":
    unittest.main()
