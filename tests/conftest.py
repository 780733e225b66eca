"""Shared fixtures for the simulator tests."""

import pytest

from cloudlet_sim.core import (
    Datacenter,
    DatacenterBroker,
    DatacenterCharacteristics,
    Host,
    Pe,
    SimulationContext,
    Vm,
)
from cloudlet_sim.scheduling import (
    CloudletSchedulerTimeShared,
    SharingPolicy,
    VmSchedulerTimeShared,
    create_allocation_policy,
)


@pytest.fixture
def context():
    return SimulationContext("test")


@pytest.fixture
def host_factory():
    """Build a host of ``pes`` identical PEs with a time-shared VM scheduler."""

    def _make(host_id=0, pes=2, mips=5000.0, ram=16384, bw=10000, storage=1_000_000,
              sharing=SharingPolicy.EQUAL):
        pe_list = [Pe(pe_id, mips) for pe_id in range(pes)]
        return Host(host_id, pe_list, ram, bw, storage, VmSchedulerTimeShared(pe_list, sharing))

    return _make


@pytest.fixture
def vm_factory():
    def _make(vm_id=0, mips=1000.0, pes=1, ram=512, bw=100, size=1000, user_id=-1):
        return Vm(vm_id, user_id, mips, pes, ram, bw, size, "Xen", CloudletSchedulerTimeShared())

    return _make


@pytest.fixture
def datacenter_factory(context, host_factory):
    """Build a datacenter in the test context; cost_per_* keywords go to its characteristics."""

    def _make(hosts=None, name="Datacenter_0", policy="first_fit", **kwargs):
        hosts = hosts or [host_factory(0)]
        costs = {key: kwargs.pop(key) for key in list(kwargs) if key.startswith("cost_per")}
        characteristics = DatacenterCharacteristics("x64", "Linux", "Xen", hosts, **costs)
        return Datacenter(context, name, characteristics, create_allocation_policy(policy), **kwargs)

    return _make


@pytest.fixture
def broker_factory(context):
    def _make(name="Broker", **kwargs):
        return DatacenterBroker(context, name, **kwargs)

    return _make
