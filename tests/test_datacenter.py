"""End-to-end runs through the broker and the datacenter."""

import pytest

from cloudlet_sim.core import (
    Cloudlet,
    CloudletStatus,
    ConfigurationError,
    EventType,
    InsufficientCapacity,
    InvalidStateTransition,
    Storage,
    UtilizationModelConstant,
    VmFailurePolicy,
)
from cloudlet_sim.scheduling import SharingPolicy


def test_time_sharing_is_fair(context, host_factory, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory([host_factory(0, pes=2, mips=5000.0)])
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=10000.0), vm_factory(1, mips=10000.0)])
    broker.submit_cloudlet_list([Cloudlet(0, 10000), Cloudlet(1, 10000)])
    broker.bind_cloudlet_to_vm(0, 0)
    broker.bind_cloudlet_to_vm(1, 1)

    context.start()

    received = broker.get_cloudlet_received_list()
    assert [c.status for c in received] == [CloudletStatus.SUCCESS] * 2
    for cloudlet in received:
        assert cloudlet.finish_time == pytest.approx(2.0, rel=1e-6)
        assert cloudlet.cpu_time == pytest.approx(2.0, rel=1e-6)


@pytest.mark.parametrize("sharing, small_finish", [
    (SharingPolicy.EQUAL, 1.0),
    (SharingPolicy.PROPORTIONAL, 2.0),
])
def test_sharing_policy_under_contention(context, host_factory, vm_factory, datacenter_factory,
                                         broker_factory, sharing, small_finish):
    datacenter_factory([host_factory(0, pes=4, mips=2500.0, sharing=sharing)])
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=10000.0, pes=1), vm_factory(1, mips=10000.0, pes=3)])
    broker.submit_cloudlet_list([Cloudlet(0, 5000), Cloudlet(1, 30000, pes=3)])
    broker.bind_cloudlet_to_vm(0, 0)
    broker.bind_cloudlet_to_vm(1, 1)

    context.start()

    small, large = broker.cloudlet_list[0], broker.cloudlet_list[1]
    assert small.finish_time == pytest.approx(small_finish)
    # Work-conserving either way: the host never idles while work remains
    assert large.finish_time == pytest.approx(3.5)


def test_capacity_exhaustion(context, host_factory, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory([host_factory(0, pes=4, mips=2500.0)])
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(i, pes=4) for i in range(5)])
    broker.submit_cloudlet_list([Cloudlet(i, 1000) for i in range(5)])

    context.start()

    assert [vm.vm_id for vm in broker.get_vms_created_list()] == [0]
    assert sorted(broker.vm_creation_failures) == [1, 2, 3, 4]
    assert all(isinstance(e, InsufficientCapacity) for e in broker.vm_creation_failures.values())
    received = broker.get_cloudlet_received_list()
    assert len(received) == 5
    assert all(c.status == CloudletStatus.SUCCESS and c.vm_id == 0 for c in received)


@pytest.mark.parametrize("policy", list(VmFailurePolicy))
def test_cloudlets_bound_to_failed_vms(context, host_factory, vm_factory, datacenter_factory,
                                       broker_factory, policy):
    datacenter_factory([host_factory(0, pes=4)])
    broker = broker_factory(vm_failure_policy=policy)
    broker.submit_vm_list([vm_factory(i, pes=4) for i in range(3)])
    broker.submit_cloudlet_list([Cloudlet(i, 1000) for i in range(3)])
    for i in range(3):
        broker.bind_cloudlet_to_vm(i, i)

    context.start()

    statuses = {c.cloudlet_id: c.status for c in broker.get_cloudlet_received_list()}
    assert len(statuses) == 3
    assert statuses[0] == CloudletStatus.SUCCESS
    if policy == VmFailurePolicy.REBIND:
        assert statuses[1] == statuses[2] == CloudletStatus.SUCCESS
        assert broker.cloudlet_list[2].vm_id == 0
    else:
        assert statuses[1] == statuses[2] == CloudletStatus.FAILED
        assert "was not created" in broker.cloudlet_list[1].failure_reason


def test_no_vm_created_fails_every_cloudlet(context, host_factory, vm_factory, datacenter_factory,
                                           broker_factory):
    datacenter_factory([host_factory(0, pes=1)])
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, pes=2)])
    broker.submit_cloudlet_list([Cloudlet(0, 1000), Cloudlet(1, 1000)])

    context.start()

    received = broker.get_cloudlet_received_list()
    assert [c.status for c in received] == [CloudletStatus.FAILED] * 2
    assert broker.finished


def test_broker_collects_each_cloudlet_once(context, host_factory, vm_factory, datacenter_factory,
                                            broker_factory):
    datacenter = datacenter_factory([host_factory(0, pes=8, mips=12500.0)])
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(i, mips=10000.0, pes=4) for i in range(2)])
    broker.submit_cloudlet_list([Cloudlet(i, 1000) for i in range(5)])

    context.start()

    received = broker.get_cloudlet_received_list()
    assert sorted(c.cloudlet_id for c in received) == [0, 1, 2, 3, 4]
    assert all(c.is_finished for c in received)
    assert all(c.finish_time == pytest.approx(0.1) for c in received)
    # Round-robin binding over the created VMs
    assert [broker.cloudlet_list[i].vm_id for i in range(5)] == [0, 1, 0, 1, 0]
    # All VMs are released once the broker is done
    assert datacenter.vms == {}
    assert len(broker.vms_destroyed) == 2


def test_destroying_a_vm_fails_its_cloudlets(context, host_factory, vm_factory, datacenter_factory,
                                            broker_factory):
    datacenter = datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    broker.submit_cloudlet_list([Cloudlet(0, 10000)])
    broker.destroy_vm(0, delay=4.0)

    context.start()

    cloudlet = broker.cloudlet_list[0]
    assert cloudlet.status == CloudletStatus.FAILED
    assert cloudlet.finish_time == pytest.approx(4.0)
    assert cloudlet.finished_so_far == pytest.approx(4000)
    assert "destroyed" in cloudlet.failure_reason
    assert datacenter.vms == {}
    assert datacenter.hosts[0].free_pes == 2


def test_cancel_running_cloudlet(context, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    broker.submit_cloudlet_list([Cloudlet(0, 10000), Cloudlet(1, 1000)])
    broker.bind_cloudlet_to_vm(0, 0)
    broker.bind_cloudlet_to_vm(1, 0)
    broker.cancel_cloudlet(0, delay=1.0)

    context.start()

    canceled, other = broker.cloudlet_list[0], broker.cloudlet_list[1]
    assert canceled.status == CloudletStatus.CANCELED
    assert canceled.finish_time == pytest.approx(1.0)
    assert canceled.finished_so_far == pytest.approx(500)
    # 500 instructions done while sharing, the rest at full speed
    assert other.finish_time == pytest.approx(1.5)


def test_required_files_delay_the_start(context, vm_factory, datacenter_factory, broker_factory):
    storage = Storage("san", capacity=1_000_000, max_transfer_rate=10.0)
    storage.add_file("input.dat", 50.0)
    datacenter = datacenter_factory(storage_list=[storage])
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    cloudlet = Cloudlet(0, 1000, required_files=["input.dat"])
    broker.submit_cloudlet_list([cloudlet])

    assert datacenter.predict_file_transfer_time(cloudlet) == pytest.approx(5.0)
    context.start()

    assert cloudlet.status == CloudletStatus.SUCCESS
    assert cloudlet.submission_time == 0.0
    assert cloudlet.exec_start_time == pytest.approx(5.0)
    assert cloudlet.finish_time == pytest.approx(6.0)


def test_late_arrival_joins_running_vm(context, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    early = Cloudlet(0, 4000)
    late = Cloudlet(1, 1000, submission_delay=2.0)
    broker.submit_cloudlet_list([early, late])

    context.start()

    assert late.submission_time == pytest.approx(2.0)
    assert late.finish_time == pytest.approx(4.0)
    assert early.finish_time == pytest.approx(5.0)
    assert broker.get_cloudlet_received_list() == [late, early]


def test_scheduling_interval_keeps_exact_finish(context, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory(scheduling_interval=1.0)
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    broker.submit_cloudlet_list([Cloudlet(0, 2500)])

    context.start()

    assert broker.cloudlet_list[0].finish_time == pytest.approx(2.5)


def test_interval_resamples_utilization(context, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory(scheduling_interval=1.0)
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    broker.submit_cloudlet_list([Cloudlet(0, 1000, utilization_cpu=UtilizationModelConstant(0.5))])

    context.start()

    cloudlet = broker.cloudlet_list[0]
    assert cloudlet.finish_time == pytest.approx(2.0)
    assert cloudlet.cpu_time == pytest.approx(2.0)


def test_costs_and_debts(context, vm_factory, datacenter_factory, broker_factory):
    datacenter = datacenter_factory(cost_per_sec=2.0, cost_per_bw=0.5,
                                    cost_per_mem=0.1, cost_per_storage=0.01)
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0, ram=512, size=1000)])
    broker.submit_cloudlet_list([Cloudlet(0, 3000, file_size=100, output_size=20)])

    context.start()

    cloudlet = broker.cloudlet_list[0]
    assert cloudlet.processing_cost == pytest.approx(2.0 * 3.0 + 0.5 * 120)
    assert datacenter.debts == {broker.id: pytest.approx(0.1 * 512 + 0.01 * 1000)}


def test_terminal_records_are_immutable_after_run(context, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0)])
    broker.submit_cloudlet_list([Cloudlet(0, 1000)])
    context.start()

    cloudlet = broker.cloudlet_list[0]
    with pytest.raises(InvalidStateTransition):
        cloudlet.mark_failed(context.now, "too late")
    assert cloudlet.status == CloudletStatus.SUCCESS


def test_two_brokers_share_a_datacenter(context, vm_factory, datacenter_factory, broker_factory):
    datacenter = datacenter_factory()
    first = broker_factory("first")
    second = broker_factory("second")
    first.submit_vm_list([vm_factory(0, mips=1000.0)])
    second.submit_vm_list([vm_factory(0, mips=1000.0)])
    first.submit_cloudlet_list([Cloudlet(0, 1000)])
    second.submit_cloudlet_list([Cloudlet(0, 3000)])

    context.start()

    assert first.cloudlet_list[0].finish_time == pytest.approx(1.0)
    assert second.cloudlet_list[0].finish_time == pytest.approx(3.0)
    assert first.finished and second.finished
    assert datacenter.vms == {}


def test_broker_finds_datacenter_on_its_own(context, vm_factory, datacenter_factory, broker_factory):
    datacenter = datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0)])
    broker.submit_cloudlet_list([Cloudlet(0, 1000)])

    context.start()

    assert broker.datacenter is datacenter
    assert broker.cloudlet_list[0].datacenter_id == datacenter.id


def test_broker_without_datacenter_is_a_configuration_error(context, broker_factory):
    broker_factory()
    with pytest.raises(ConfigurationError):
        context.start()
    assert not context.running


def test_cancel_during_submission_delay(context, vm_factory, datacenter_factory, broker_factory):
    datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    delayed = Cloudlet(0, 10000, submission_delay=5.0)
    broker.submit_cloudlet_list([delayed])
    broker.cancel_cloudlet(0, delay=1.0)

    context.start()

    assert delayed.status == CloudletStatus.CANCELED
    assert delayed.finish_time == pytest.approx(1.0)
    assert delayed.finished_so_far == 0.0
    assert broker.get_cloudlet_received_list() == [delayed]


def test_cancel_of_one_delayed_cloudlet_leaves_others_running(context, vm_factory, datacenter_factory,
                                                             broker_factory):
    datacenter_factory()
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(0, mips=1000.0)])
    running = Cloudlet(0, 3000)
    delayed = Cloudlet(1, 1000, submission_delay=2.0)
    broker.submit_cloudlet_list([running, delayed])
    broker.cancel_cloudlet(1, delay=1.0)

    context.start()

    assert delayed.status == CloudletStatus.CANCELED
    assert delayed.submission_time is None
    assert running.status == CloudletStatus.SUCCESS
    assert running.finish_time == pytest.approx(3.0)


def assert_within_capacity(datacenter):
    for host in datacenter.hosts.values():
        for pe in host.pes:
            assert pe.provisioner.allocated <= pe.mips * (1 + 1e-9) + 1e-9
        for provisioner in (host.ram_provisioner, host.bw_provisioner, host.storage_provisioner):
            assert provisioner.allocated <= provisioner.capacity
        assert host.reserved_pes <= len(host.pes)
        allocated = sum(host.vm_scheduler.allocated_mips(uid) for uid in host.vms)
        assert allocated <= host.total_mips * (1 + 1e-9)


def test_no_over_allocation_at_any_event(context, host_factory, vm_factory, datacenter_factory,
                                         broker_factory):
    datacenter = datacenter_factory(
        [host_factory(0, pes=4, mips=2500.0), host_factory(1, pes=2, mips=4000.0)],
        scheduling_interval=0.5,
    )
    broker = broker_factory()
    broker.submit_vm_list([vm_factory(i, mips=10000.0, pes=1 + i % 2) for i in range(4)])
    broker.submit_cloudlet_list([
        Cloudlet(i, 4000 + 1500 * i, pes=1 + i % 2, submission_delay=0.7 * i,
                 utilization_cpu=UtilizationModelConstant(0.3 + 0.1 * (i % 5)))
        for i in range(10)
    ])

    checked = []
    for event_type, handler in list(datacenter.handlers.items()):
        def checking(event, handler=handler):
            handler(event)
            assert_within_capacity(datacenter)
            checked.append(event.event_type)
        datacenter.handlers[event_type] = checking

    context.start()

    assert checked.count(EventType.VM_DATACENTER_EVENT) > 5
    assert len(broker.get_cloudlet_received_list()) == 10
    assert all(c.status == CloudletStatus.SUCCESS for c in broker.get_cloudlet_received_list())


def test_vm_spills_over_to_second_host(context, host_factory, vm_factory, datacenter_factory, broker_factory):
    datacenter = datacenter_factory([host_factory(0, pes=1), host_factory(1, pes=4)])
    broker = broker_factory()
    small, large = vm_factory(0, pes=1), vm_factory(1, pes=2)
    broker.submit_vm_list([small, large])
    broker.submit_cloudlet_list([Cloudlet(0, 100000), Cloudlet(1, 100000)])

    context.start(until=1.0)

    assert set(datacenter.hosts[0].vms) == {small.uid}
    assert set(datacenter.hosts[1].vms) == {large.uid}
    assert datacenter.hosts[0].free_pes == 0
    assert datacenter.hosts[1].free_pes == 2
    assert [vm.vm_id for vm in broker.get_vms_created_list()] == [0, 1]
