import unittest

from cloudsim.core.events import DatacenterUpdate, EventTag, SimEvent, VmCreateAck
from cloudsim.core.exceptions import (
    InvalidDelay,
    LivelockDetected,
    OwnershipError,
    UnhandledEvent,
    UnknownEntity,
)
from cloudsim.core.simulator import Simulation, SimulationConfig

from helpers import Recorder


class TestEventOrdering(unittest.TestCase):
    def setUp(self):
        self.sim = Simulation()
        self.recorder = Recorder("recorder", self.sim)

    def test_events_dispatched_in_time_order(self):
        late = self.recorder.ping(10)
        early = self.recorder.ping(2)
        middle = self.recorder.ping(5)

        end = self.sim.start()

        self.assertEqual(end, 10)
        self.assertListEqual(
            self.recorder.received,
            [(2, early.sequence), (5, middle.sequence), (10, late.sequence)],
        )

    def test_same_timestamp_keeps_scheduling_order(self):
        events = [self.recorder.ping(3) for _ in range(5)]

        self.sim.start()

        self.assertListEqual([seq for _, seq in self.recorder.received], [e.sequence for e in events])

    def test_pending_events_sorted(self):
        self.recorder.ping(4)
        self.recorder.ping(1)
        self.recorder.ping(4)

        pending = self.sim.pending_events()

        self.assertListEqual([e.timestamp for e in pending], [1, 4, 4])
        self.assertLess(pending[1].sequence, pending[2].sequence)

    def test_clock_origin(self):
        sim = Simulation(SimulationConfig(clock_origin=100.0))
        recorder = Recorder("recorder", sim)
        recorder.ping(5)

        self.assertEqual(sim.start(), 105.0)
        self.assertEqual(recorder.received[0][0], 105.0)


class TestScheduling(unittest.TestCase):
    def setUp(self):
        self.sim = Simulation()
        self.recorder = Recorder("recorder", self.sim)

    def test_negative_delay_rejected(self):
        with self.assertRaises(InvalidDelay):
            self.recorder.ping(-1)
        with self.assertRaises(ValueError):
            self.recorder.ping(-0.5)
        self.assertListEqual(self.sim.pending_events(), [])

    def test_unknown_destination_rejected(self):
        with self.assertRaises(UnknownEntity):
            self.recorder.ping(1, destination=42)

    def test_payload_must_match_tag(self):
        with self.assertRaises(TypeError):
            self.sim.send(self.recorder.id, self.recorder.id, 0, EventTag.DATACENTER_UPDATE, None)
        with self.assertRaises(TypeError):
            SimEvent(0.0, 0, 0, EventTag.VM_CREATE, DatacenterUpdate(), 0)

    def test_registration_closed_after_start(self):
        self.recorder.ping(1)
        self.sim.start()

        with self.assertRaises(RuntimeError):
            Recorder("late", self.sim)


class TestCancellation(unittest.TestCase):
    def setUp(self):
        self.sim = Simulation()
        self.recorder = Recorder("recorder", self.sim)
        self.other = Recorder("other", self.sim)

    def test_cancelled_event_not_dispatched(self):
        kept = self.recorder.ping(1)
        dropped = self.recorder.ping(2)

        self.assertTrue(self.recorder.cancel(dropped))
        self.assertFalse(self.recorder.cancel(dropped))
        self.sim.start()

        self.assertListEqual(self.recorder.received, [(1, kept.sequence)])
        self.assertEqual(self.sim.dispatched_events, 1)

    def test_only_source_may_cancel(self):
        event = self.recorder.ping(1)

        with self.assertRaises(OwnershipError):
            self.other.cancel(event)
        self.assertTrue(event.is_pending)

    def test_dispatched_event_cannot_be_cancelled(self):
        event = self.recorder.ping(1)
        self.sim.start()

        self.assertTrue(event.dispatched)
        self.assertFalse(self.recorder.cancel(event))

    def test_cancel_events_by_requester(self):
        self.recorder.ping(1)
        self.recorder.ping(2)
        self.other.ping(3)

        cancelled = self.sim.cancel_events(self.recorder.id)

        self.assertEqual(cancelled, 2)
        self.assertEqual(len(self.sim.pending_events()), 1)


class TestRunControl(unittest.TestCase):
    def test_stop_discards_pending_events(self):
        sim = Simulation()

        def stop_at_five(entity, event):
            if entity.clock == 5:
                entity.simulation.stop()

        recorder = Recorder("recorder", sim, on_event=stop_at_five)
        recorder.ping(5)
        late = recorder.ping(10)

        self.assertEqual(sim.start(), 5)
        self.assertTrue(late.cancelled)
        self.assertEqual(len(recorder.received), 1)
        self.assertFalse(sim.is_running)

    def test_terminate_at(self):
        sim = Simulation(SimulationConfig(terminate_at=7.0))
        recorder = Recorder("recorder", sim)
        recorder.ping(5)
        recorder.ping(10)

        self.assertEqual(sim.start(), 7.0)
        self.assertListEqual([t for t, _ in recorder.received], [5])

    def test_start_twice_rejected(self):
        sim = Simulation()
        Recorder("recorder", sim).ping(1)
        sim.start()

        with self.assertRaises(RuntimeError):
            sim.start()
        with self.assertRaises(RuntimeError):
            sim.initialize(1)

    def test_initialize_resets_clock_and_seed(self):
        sim = Simulation()
        sim.initialize(num_tenants=2, seed=7, clock_origin=50.0)
        recorder = Recorder("recorder", sim)
        recorder.ping(1)

        self.assertEqual(sim.num_tenants, 2)
        self.assertEqual(sim.config.random_seed, 7)
        self.assertEqual(sim.start(), 51.0)

    def test_initialize_rejects_pending_events(self):
        sim = Simulation()
        Recorder("recorder", sim).ping(1)

        with self.assertRaises(RuntimeError):
            sim.initialize(1)

    def test_start_without_entities(self):
        with self.assertRaises(RuntimeError):
            Simulation().start()


class FaultyRecorder(Recorder):
    def start(self):
        raise RuntimeError("cannot start")

    def shutdown(self):
        raise RuntimeError("cannot stop")


class TestErrorIsolation(unittest.TestCase):
    def test_handler_error_recorded_and_loop_continues(self):
        sim = Simulation()

        def fail_first(entity, event):
            if len(entity.received) == 1:
                raise RuntimeError("boom")

        recorder = Recorder("recorder", sim, on_event=fail_first)
        recorder.ping(1)
        recorder.ping(2)

        sim.start()

        self.assertEqual(len(recorder.received), 2)
        self.assertEqual(len(sim.errors), 1)
        self.assertIsInstance(sim.errors[0].error, RuntimeError)
        self.assertEqual(sim.errors[0].event.timestamp, 1)

    def test_lifecycle_hook_errors_recorded(self):
        sim = Simulation()
        faulty = FaultyRecorder("faulty", sim)
        healthy = Recorder("healthy", sim)
        healthy.ping(3)

        end = sim.start()

        self.assertEqual(end, 3)
        self.assertEqual(len(healthy.received), 1)
        self.assertListEqual([f.phase for f in sim.errors], ["start", "shutdown"])
        self.assertTrue(all(f.entity_id == faulty.id for f in sim.errors))
        self.assertTrue(all(f.event is None for f in sim.errors))
        self.assertListEqual([f.origin for f in sim.errors], ["start", "shutdown"])

    def test_unhandled_tag_reported(self):
        sim = Simulation()
        recorder = Recorder("recorder", sim)
        ack = VmCreateAck(datacenter_id=0, broker_id=recorder.id, vm_id=0, success=True)
        sim.send(recorder.id, recorder.id, 1, EventTag.VM_CREATE_ACK, ack)

        sim.start()

        self.assertEqual(len(sim.errors), 1)
        self.assertIsInstance(sim.errors[0].error, UnhandledEvent)

    def test_zero_delay_livelock_guarded(self):
        sim = Simulation(SimulationConfig(max_zero_delay_self_events=10))

        def reschedule(entity, event):
            entity.ping(0)

        recorder = Recorder("recorder", sim, on_event=reschedule)
        recorder.ping(0)

        self.assertEqual(sim.start(), 0)
        self.assertEqual(len(sim.errors), 1)
        self.assertIsInstance(sim.errors[0].error, LivelockDetected)
        self.assertLessEqual(len(recorder.received), 10)

    def test_positive_delay_not_counted_as_livelock(self):
        sim = Simulation(SimulationConfig(max_zero_delay_self_events=3))

        def reschedule(entity, event):
            if len(entity.received) < 20:
                entity.ping(1)

        recorder = Recorder("recorder", sim, on_event=reschedule)
        recorder.ping(0)

        self.assertEqual(sim.start(), 19)
        self.assertListEqual(sim.errors, [])


class TestSimulationConfig(unittest.TestCase):
    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            SimulationConfig(network_latency=-1)
        with self.assertRaises(ValueError):
            SimulationConfig(min_time_between_events=-0.1)
        with self.assertRaises(ValueError):
            SimulationConfig(max_zero_delay_self_events=0)


if __name__ == "__main__":
    unittest.main()
