import unittest

from cloudsim.core.exceptions import InsufficientCapacity
from cloudsim.core.provisioners import Pe, PeProvisioner, PeStatus, SimpleProvisioner


class TestSimpleProvisioner(unittest.TestCase):
    def setUp(self):
        self.ram = SimpleProvisioner("ram", 2048)

    def test_allocate_and_release(self):
        self.ram.allocate("vm-0", 512)
        self.ram.allocate("vm-1", 1024)

        self.assertEqual(self.ram.allocated, 1536)
        self.assertEqual(self.ram.available, 512)
        self.assertEqual(self.ram.get_available(), 512)
        self.assertEqual(self.ram.allocated_for("vm-0"), 512)

        self.assertEqual(self.ram.deallocate("vm-0"), 512)
        self.assertEqual(self.ram.available, 1024)

    def test_over_allocation_rejected(self):
        self.ram.allocate("vm-0", 2000)

        with self.assertRaises(InsufficientCapacity) as ctx:
            self.ram.allocate("vm-1", 100)
        self.assertEqual(ctx.exception.resource, "ram")
        self.assertEqual(ctx.exception.requested, 100)
        self.assertEqual(self.ram.allocated, 2000)
        self.assertNotIn("vm-1", self.ram.consumers)

    def test_reallocation_replaces_previous_amount(self):
        self.ram.allocate("vm-0", 2048)
        self.ram.allocate("vm-0", 1024)

        self.assertEqual(self.ram.allocated, 1024)
        self.assertTrue(self.ram.can_allocate(2048, "vm-0"))
        self.assertFalse(self.ram.can_allocate(2048, "vm-1"))

    def test_deallocate_twice_is_noop(self):
        self.ram.allocate("vm-0", 512)
        self.ram.deallocate("vm-0")
        state = (self.ram.allocated, self.ram.consumers)

        self.assertEqual(self.ram.deallocate("vm-0"), 0.0)
        self.assertEqual((self.ram.allocated, self.ram.consumers), state)

    def test_invalid_amounts(self):
        with self.assertRaises(ValueError):
            self.ram.allocate("vm-0", -1)
        with self.assertRaises(ValueError):
            SimpleProvisioner("bw", -10)


class TestPeProvisioner(unittest.TestCase):
    def test_allocations_accumulate(self):
        provisioner = PeProvisioner(1000)
        provisioner.allocate("vm-0", 300)
        provisioner.allocate("vm-0", 200)

        self.assertEqual(provisioner.allocated_for("vm-0"), 500)
        with self.assertRaises(InsufficientCapacity):
            provisioner.allocate("vm-1", 600)

        provisioner.clear()
        self.assertEqual(provisioner.available, 1000)

    def test_pe_status(self):
        pe = Pe(0, 1000)
        self.assertEqual(pe.status, PeStatus.FREE)

        pe.provisioner.allocate("vm-0", 1000)
        self.assertEqual(pe.status, PeStatus.ALLOCATED)

        with self.assertRaises(ValueError):
            Pe(1, 0)


if __name__ == "__main__":
    unittest.main()
