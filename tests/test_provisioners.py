"""Resource provisioners."""

import pytest

from cloudlet_sim.core import ConfigurationError, PeProvisioner, ResourceExhausted, ResourceProvisioner


def test_allocate_and_release():
    ram = ResourceProvisioner("ram", 1024)
    ram.allocate("vm-a", 512)
    ram.allocate("vm-b", 256)

    assert ram.allocated == 768
    assert ram.available == 256
    assert ram.allocated_for("vm-a") == 512

    assert ram.release("vm-a") == 512
    assert ram.release("vm-a") == 0.0
    assert ram.allocated == 256


def test_reallocation_replaces_previous_receipt():
    bw = ResourceProvisioner("bw", 1000)
    bw.allocate("vm", 800)
    bw.allocate("vm", 900)

    assert bw.allocated == 900
    assert bw.is_suitable(1000, owner="vm")
    assert not bw.is_suitable(200)


def test_over_allocation_raises_and_changes_nothing():
    storage = ResourceProvisioner("storage", 100)
    storage.allocate("vm-a", 60)

    with pytest.raises(ResourceExhausted) as info:
        storage.allocate("vm-b", 50)

    assert info.value.requested == 50
    assert info.value.available == 40
    assert storage.allocated == 60
    assert storage.allocated_for("vm-b") == 0.0


def test_float_noise_at_capacity_is_tolerated():
    mips = ResourceProvisioner("mips", 1000)
    mips.allocate("a", 1000 / 3)
    mips.allocate("b", 1000 / 3)
    mips.allocate("c", 1000 - 2 * (1000 / 3) + 1e-10)
    assert mips.utilization == pytest.approx(1.0)


def test_negative_amounts_rejected():
    ram = ResourceProvisioner("ram", 10)
    with pytest.raises(ValueError):
        ram.allocate("vm", -1)
    with pytest.raises(ConfigurationError):
        ResourceProvisioner("ram", -10)


def test_pe_provisioner_requires_positive_mips():
    assert PeProvisioner(2500).capacity == 2500
    with pytest.raises(ConfigurationError):
        PeProvisioner(0)
