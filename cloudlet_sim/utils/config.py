"""Configuration management utilities."""

from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional
from dataclasses import dataclass
from pathlib import Path
import yaml
import json
from pydantic import BaseModel, Field, ValidationError
from loguru import logger

from ..core.broker import DatacenterBroker, VmFailurePolicy
from ..core.cloudlet import Cloudlet
from ..core.datacenter import Datacenter, DatacenterCharacteristics
from ..core.engine import SimulationContext
from ..core.errors import ConfigurationError, ResourceExhausted
from ..core.resources import Host, Pe
from ..core.storage import Storage
from ..core.utilization import (
    UtilizationModel,
    UtilizationModelConstant,
    UtilizationModelFull,
    UtilizationModelNull,
    UtilizationModelStochastic,
    UtilizationModelTrace,
)
from ..core.vm import Vm
from ..scheduling.allocation import create_allocation_policy
from ..scheduling.cloudlet_scheduler import CloudletSchedulerTimeShared
from ..scheduling.vm_scheduler import SharingPolicy, VmSchedulerTimeShared

if TYPE_CHECKING:
    import pandas as pd


class UtilizationConfig(BaseModel):
    """Utilization model selection."""

    model: Literal["full", "null", "constant", "stochastic", "trace"] = "full"
    fraction: float = Field(1.0, ge=0.0, le=1.0)
    seed: Optional[int] = None
    samples: List[float] = Field(default_factory=list)
    interval: float = Field(300.0, gt=0.0)

    def build(self, offset: int = 0) -> UtilizationModel:
        if self.model == "null":
            return UtilizationModelNull()
        if self.model == "constant":
            return UtilizationModelConstant(self.fraction)
        if self.model == "stochastic":
            return UtilizationModelStochastic(None if self.seed is None else self.seed + offset)
        if self.model == "trace":
            return UtilizationModelTrace(self.samples, self.interval)
        return UtilizationModelFull()


class HostConfig(BaseModel):
    """A group of identical hosts."""

    count: int = Field(1, ge=1)
    pes: int = Field(1, ge=1)
    mips_per_pe: float = Field(..., gt=0.0)
    ram: float = Field(..., ge=0.0)         # MB
    bw: float = Field(..., ge=0.0)          # Mbit/s
    storage: float = Field(..., ge=0.0)     # MB


class StorageConfig(BaseModel):
    """A storage device and the files stored on it (sizes in MB)."""

    name: str = "storage"
    capacity: float = Field(..., ge=0.0)            # MB
    max_transfer_rate: float = Field(..., gt=0.0)   # MB/s
    files: Dict[str, float] = Field(default_factory=dict)


class DatacenterConfig(BaseModel):
    """Datacenter characteristics, policies and host pool."""

    name: str = "Datacenter_0"
    architecture: str = "x64"
    os: str = "Linux"
    vmm: str = "Xen"
    time_zone: float = Field(0.0, ge=-12.0, le=14.0)
    cost_per_sec: float = Field(0.0, ge=0.0)
    cost_per_mem: float = Field(0.0, ge=0.0)
    cost_per_storage: float = Field(0.0, ge=0.0)
    cost_per_bw: float = Field(0.0, ge=0.0)
    allocation_policy: Literal["first_fit", "least_loaded"] = "first_fit"
    vm_sharing: Literal["equal", "proportional"] = "equal"
    scheduling_interval: float = Field(0.0, ge=0.0)
    hosts: List[HostConfig] = Field(..., min_length=1)
    storage: List[StorageConfig] = Field(default_factory=list)


class VmConfig(BaseModel):
    """A group of identical VMs."""

    count: int = Field(1, ge=1)
    mips: float = Field(..., gt=0.0)
    pes: int = Field(1, ge=1)
    ram: float = Field(..., ge=0.0)
    bw: float = Field(..., ge=0.0)
    size: float = Field(..., ge=0.0)
    vmm: str = "Xen"


class CloudletConfig(BaseModel):
    """A group of identical cloudlets."""

    count: int = Field(1, ge=1)
    length: float = Field(..., gt=0.0)
    pes: int = Field(1, ge=1)
    file_size: float = Field(0.0, ge=0.0)
    output_size: float = Field(0.0, ge=0.0)
    submission_delay: float = Field(0.0, ge=0.0)
    required_files: List[str] = Field(default_factory=list)
    utilization_cpu: UtilizationConfig = Field(default_factory=UtilizationConfig)
    utilization_ram: UtilizationConfig = Field(default_factory=UtilizationConfig)
    utilization_bw: UtilizationConfig = Field(default_factory=UtilizationConfig)


class BrokerConfig(BaseModel):
    name: str = "Broker"
    vm_failure_policy: Literal["rebind", "fail"] = "rebind"


class ScenarioConfig(BaseModel):
    """Main configuration class: one datacenter, one broker and its workload."""

    name: str = "private_cloud"
    datacenter: DatacenterConfig
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    vms: List[VmConfig] = Field(default_factory=list)
    cloudlets: List[CloudletConfig] = Field(default_factory=list)


@dataclass
class Scenario:
    """A scenario built and ready to run."""
    context: SimulationContext
    datacenter: Datacenter
    broker: DatacenterBroker
    vms: List[Vm]
    cloudlets: List[Cloudlet]

    def run(self) -> List[Cloudlet]:
        self.context.start()
        return self.broker.get_cloudlet_received_list()


def default_scenario_config() -> ScenarioConfig:
    """The private-cloud example: one large host, two VMs, five small cloudlets."""
    return ScenarioConfig(
        name="private_cloud",
        datacenter=DatacenterConfig(
            name="DatacenterOne",
            architecture="x64",
            os="Linux",
            vmm="Xen",
            time_zone=3.0,
            cost_per_sec=3.0,
            cost_per_mem=0.05,
            cost_per_storage=0.001,
            cost_per_bw=0.0,
            hosts=[HostConfig(count=1, pes=8, mips_per_pe=12500.0, ram=65536, bw=10000, storage=2000000)],
        ),
        broker=BrokerConfig(name="Broker"),
        vms=[VmConfig(count=2, mips=10000.0, pes=4, ram=8192, bw=1000, size=100000, vmm="Xen")],
        cloudlets=[CloudletConfig(count=5, length=1000.0, pes=1, file_size=300, output_size=100)],
    )


def parse_config(config_data: Dict[str, Any]) -> ScenarioConfig:
    """Validate a raw configuration mapping."""
    try:
        return ScenarioConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid scenario configuration:\n{e}") from e


def load_config(config_path: Path) -> ScenarioConfig:
    """Load configuration from file."""

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        try:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                config_data = yaml.safe_load(f)
            elif config_path.suffix.lower() == '.json':
                config_data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {config_path.suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse configuration file {config_path}: {e}") from e

    if config_data is None:
        raise ConfigurationError(f"Config file is empty: {config_path}")

    config = parse_config(config_data)
    logger.info(f"Configuration loaded: scenario {config.name}, "
                f"{sum(h.count for h in config.datacenter.hosts)} hosts, "
                f"{sum(v.count for v in config.vms)} VMs, "
                f"{sum(c.count for c in config.cloudlets)} cloudlets")
    return config


def save_config(config: ScenarioConfig, config_path: Path) -> None:
    """Save configuration to file."""

    config_path = Path(config_path)
    suffix = config_path.suffix.lower()
    if suffix not in [".yaml", ".yml", ".json"]:
        raise ConfigurationError(f"Unsupported configuration file format: {config_path.suffix}")

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_dict = config.model_dump(mode="json")

    with open(config_path, "w") as f:
        if suffix == ".json":
            json.dump(config_dict, f, indent=2)
        else:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2, sort_keys=False)

    logger.info(f"Configuration saved to {config_path}")


def build_scenario(config: ScenarioConfig, context: Optional[SimulationContext] = None) -> Scenario:
    """Instantiate hosts, datacenter, broker, VMs and cloudlets from a configuration."""
    context = context or SimulationContext(config.name)
    dc_config = config.datacenter
    sharing = SharingPolicy(dc_config.vm_sharing)

    hosts: List[Host] = []
    for group in dc_config.hosts:
        for _ in range(group.count):
            pes = [Pe(pe_id, group.mips_per_pe) for pe_id in range(group.pes)]
            hosts.append(Host(
                host_id=len(hosts),
                pes=pes,
                ram=group.ram,
                bw=group.bw,
                storage=group.storage,
                vm_scheduler=VmSchedulerTimeShared(pes, sharing),
            ))

    characteristics = DatacenterCharacteristics(
        architecture=dc_config.architecture,
        os=dc_config.os,
        vmm=dc_config.vmm,
        hosts=hosts,
        time_zone=dc_config.time_zone,
        cost_per_sec=dc_config.cost_per_sec,
        cost_per_mem=dc_config.cost_per_mem,
        cost_per_storage=dc_config.cost_per_storage,
        cost_per_bw=dc_config.cost_per_bw,
    )

    storage_list: List[Storage] = []
    for storage_config in dc_config.storage:
        storage = Storage(storage_config.name, storage_config.capacity, storage_config.max_transfer_rate)
        for file_name, size in storage_config.files.items():
            try:
                storage.add_file(file_name, size)
            except ResourceExhausted as e:
                raise ConfigurationError(f"Storage {storage_config.name} cannot hold {file_name}: {e}") from e
        storage_list.append(storage)

    datacenter = Datacenter(
        context,
        dc_config.name,
        characteristics,
        create_allocation_policy(dc_config.allocation_policy),
        storage_list=storage_list,
        scheduling_interval=dc_config.scheduling_interval,
    )
    broker = DatacenterBroker(
        context,
        config.broker.name,
        datacenter=datacenter,
        vm_failure_policy=VmFailurePolicy(config.broker.vm_failure_policy),
    )

    vms: List[Vm] = []
    for group in config.vms:
        for _ in range(group.count):
            vms.append(Vm(
                vm_id=len(vms),
                user_id=broker.id,
                mips=group.mips,
                pes=group.pes,
                ram=group.ram,
                bw=group.bw,
                size=group.size,
                vmm=group.vmm,
                cloudlet_scheduler=CloudletSchedulerTimeShared(),
            ))

    cloudlets: List[Cloudlet] = []
    for group in config.cloudlets:
        for _ in range(group.count):
            cloudlets.append(Cloudlet(
                cloudlet_id=len(cloudlets),
                length=group.length,
                pes=group.pes,
                file_size=group.file_size,
                output_size=group.output_size,
                utilization_cpu=group.utilization_cpu.build(len(cloudlets)),
                utilization_ram=group.utilization_ram.build(len(cloudlets)),
                utilization_bw=group.utilization_bw.build(len(cloudlets)),
                user_id=broker.id,
                submission_delay=group.submission_delay,
                required_files=group.required_files,
            ))

    broker.submit_vm_list(vms)
    broker.submit_cloudlet_list(cloudlets)
    return Scenario(context, datacenter, broker, vms, cloudlets)


def save_results(summary: Dict[str, Any], cloudlets_frame: "pd.DataFrame", output_dir: Path) -> None:
    """Save simulation results to files."""

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    results_file = output_dir / "summary.json"
    with open(results_file, 'w') as f:
        json.dump(summary, f, indent=2, default=str)
    logger.info(f"Results saved to {results_file}")

    cloudlets_file = output_dir / "cloudlets.csv"
    cloudlets_frame.to_csv(cloudlets_file, index=False)
    logger.info(f"Cloudlet records saved to {cloudlets_file}")
