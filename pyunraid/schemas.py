"""Pydantic models for Unraid GraphQL payloads.

Field names are snake_case in Python and camelCase on the wire. Unknown fields
are kept (extra="allow") so newer server versions do not break validation.
Unraid reports large byte and kilobyte counts as BigInt strings; these are
coerced to numbers.
"""
from typing import Dict, List, Optional, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


def _percent(used: Optional[float], total: Optional[float]) -> Optional[float]:
    if used is None or not total:
        return None
    return used / total * 100


# Connection test
class OnlineStatus(ApiModel):
    online: bool


# System metrics
class CpuMetrics(ApiModel):
    percent_total: float = Field(ge=0, le=100)


class MemoryMetrics(ApiModel):
    total: float
    used: float
    free: float
    available: Optional[float] = None
    percent_total: float = Field(ge=0, le=100)


class Metrics(ApiModel):
    cpu: CpuMetrics
    memory: MemoryMetrics


class SystemInfo(ApiModel):
    metrics: Metrics
    info: Optional[Dict[str, Any]] = None
    notifications: Optional[Dict[str, Any]] = None

    @property
    def cpu_usage(self) -> float:
        return self.metrics.cpu.percent_total

    @property
    def memory_percent(self) -> float:
        return self.metrics.memory.percent_total

    @property
    def unread_notifications(self) -> int:
        try:
            return int(self.notifications['overview']['unread']['total'] or 0)
        except (KeyError, TypeError):
            return 0


# Storage
class ArrayCapacityKilobytes(ApiModel):
    free: float
    used: float
    total: float


class ArrayCapacity(ApiModel):
    kilobytes: ArrayCapacityKilobytes


class ParityCheckStatus(ApiModel):
    status: str
    progress: Optional[float] = None
    running: Optional[bool] = None
    errors: Optional[int] = None


class ArrayFilesystem(ApiModel):
    name: str
    fs_size: Optional[float] = None
    fs_free: Optional[float] = None
    fs_used: Optional[float] = None

    @property
    def usage_percent(self) -> Optional[float]:
        return _percent(self.fs_used, self.fs_size)


class ArrayDisk(ArrayFilesystem):
    id: str
    status: str
    temp: Optional[float] = None
    is_spinning: Optional[bool] = None
    type: Optional[str] = None


class StorageArray(ApiModel):
    state: str
    capacity: ArrayCapacity
    parity_check_status: ParityCheckStatus
    boot: Optional[ArrayFilesystem] = None
    caches: List[ArrayFilesystem] = []
    disks: List[ArrayDisk] = []

    @property
    def total_size(self) -> float:
        return self.capacity.kilobytes.total * 1024

    @property
    def used_size(self) -> float:
        return self.capacity.kilobytes.used * 1024

    @property
    def free_size(self) -> float:
        return self.capacity.kilobytes.free * 1024

    @property
    def usage_percent(self) -> float:
        return _percent(self.used_size, self.total_size) or 0.0


class StorageInfo(ApiModel):
    array: StorageArray


# Docker
class DockerContainer(ApiModel):
    id: str = Field(min_length=1)
    names: List[str]
    image: str
    state: str
    status: str
    auto_start: bool = False

    @property
    def name(self) -> str:
        if self.names:
            return self.names[0].lstrip('/')
        return self.id

    @property
    def running(self) -> bool:
        return self.state.upper() == 'RUNNING'


class DockerInfo(ApiModel):
    containers: List[DockerContainer]


class DockerContainers(ApiModel):
    docker: DockerInfo


# Virtual machines
class VirtualMachine(ApiModel):
    uuid: str = Field(min_length=1)
    name: Optional[str] = None
    state: str

    @property
    def display_name(self) -> str:
        return self.name or self.uuid

    @property
    def power_state(self) -> str:
        return self.state


class VmDomains(ApiModel):
    domain: List[VirtualMachine] = []


class VirtualMachines(ApiModel):
    vms: VmDomains


# Mutation results
class ContainerState(ApiModel):
    id: str
    state: str
    status: str


class ContainerActions(ApiModel):
    start: Optional[ContainerState] = None
    stop: Optional[ContainerState] = None
    restart: Optional[ContainerState] = None


class ContainerMutation(ApiModel):
    docker: ContainerActions


class VmActions(ApiModel):
    start: Optional[bool] = None
    stop: Optional[bool] = None


class VmMutation(ApiModel):
    vm: VmActions


class ArrayState(ApiModel):
    id: str
    state: str


class ArrayActions(ApiModel):
    set_state: ArrayState


class ArrayMutation(ApiModel):
    array: ArrayActions


class ParityCheckActions(ApiModel):
    start: Optional[bool] = None
    pause: Optional[bool] = None
    resume: Optional[bool] = None
    cancel: Optional[bool] = None


class ParityCheckMutation(ApiModel):
    parity_check: ParityCheckActions


class DiskSpinActions(ApiModel):
    spin_up: Optional[bool] = None
    spin_down: Optional[bool] = None


class DiskSpinMutation(ApiModel):
    disk: DiskSpinActions
