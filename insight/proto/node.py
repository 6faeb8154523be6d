"""
NodeStat / NodeReport 模型（远端 agent 输出的单个 JSON 文档）。

说明：
- 输出字段名沿用 agent 的线上格式（`cpuStat` / `diskPartitions` ...）
- 输入同时接受简写名（`cpu` / `partitions` / `memoryInfo` ...），见 `_either`
- 数值宽度用 Annotated 约束：计数与字节数为 uint64，pid/线程数为 int32
- 缺失字段取零值（与 agent 端序列化零值的行为一致），类型不对则校验失败
"""

from __future__ import annotations

from typing import Annotated

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

UInt64 = Annotated[int, Field(ge=0, le=2**64 - 1)]
Int32 = Annotated[int, Field(ge=-(2**31), le=2**31 - 1)]
Int64 = Annotated[int, Field(ge=-(2**63), le=2**63 - 1)]


def _either(name: str, short: str):
    return AliasChoices(name, short)


class _Stat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CpuTime(_Stat):
    cpu: str = ""
    user: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    nice: float = 0.0
    iowait: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    steal: float = 0.0
    guest: float = 0.0
    guestNice: float = 0.0


class CpuStat(_Stat):
    physicalCount: Int64 = 0
    logicalCount: Int64 = 0
    cpuPercents: list[float] = Field(default_factory=list)
    cpuTimes: list[CpuTime] = Field(default_factory=list)


class DiskPartition(_Stat):
    device: str = ""
    mountpoint: str = ""
    fstype: str = ""
    opts: list[str] = Field(default_factory=list)


class DiskUsage(_Stat):
    path: str = ""
    fstype: str = ""
    total: UInt64 = 0
    free: UInt64 = 0
    used: UInt64 = 0
    usedPercent: float = 0.0


class DiskStat(_Stat):
    diskPartitions: list[DiskPartition] = Field(
        default_factory=list, validation_alias=_either("diskPartitions", "partitions")
    )
    diskUsage: DiskUsage = Field(default_factory=DiskUsage, validation_alias=_either("diskUsage", "usage"))


class CGroupDockerStat(_Stat):
    containerId: str = ""
    name: str = ""
    image: str = ""
    status: str = ""
    running: bool = False


class CGroupMemDocker(_Stat):
    cache: UInt64 = 0
    rss: UInt64 = 0
    rssHuge: UInt64 = 0
    mappedFile: UInt64 = 0
    totalCache: UInt64 = 0
    totalRss: UInt64 = 0
    totalRssHuge: UInt64 = 0
    totalMappedFile: UInt64 = 0
    memUsageInBytes: UInt64 = 0
    memMaxUsageInBytes: UInt64 = 0
    memLimitInBytes: UInt64 = 0


class DockerStat(_Stat):
    cgroupCpuDockerUsages: list[float] = Field(default_factory=list)
    cgroupDockerStats: list[CGroupDockerStat] = Field(default_factory=list)
    cgroupMemDockers: list[CGroupMemDocker] = Field(default_factory=list)


class HostStat(_Stat):
    hostname: str = ""
    procs: UInt64 = 0
    os: str = ""
    platform: str = ""
    platformFamily: str = ""
    platformVersion: str = ""
    kernelVersion: str = ""
    kernelArch: str = ""
    hostID: str = ""


class LoadAvg(_Stat):
    load1: float = 0.0
    load5: float = 0.0
    load15: float = 0.0


class LoadMisc(_Stat):
    procsTotal: Int64 = 0
    procsCreated: Int64 = 0
    procsRunning: Int64 = 0
    procsBlocked: Int64 = 0
    ctxt: Int64 = 0


class LoadStat(_Stat):
    loadAvg: LoadAvg = Field(default_factory=LoadAvg, validation_alias=_either("loadAvg", "avg"))
    loadMisc: LoadMisc = Field(default_factory=LoadMisc, validation_alias=_either("loadMisc", "misc"))


class MemSwapDevice(_Stat):
    name: str = ""
    usedBytes: UInt64 = 0
    freeBytes: UInt64 = 0


class MemSwapMemory(_Stat):
    total: UInt64 = 0
    used: UInt64 = 0
    free: UInt64 = 0
    usedPercent: float = 0.0


class MemVirtual(_Stat):
    total: UInt64 = 0
    available: UInt64 = 0
    used: UInt64 = 0
    usedPercent: float = 0.0
    free: UInt64 = 0
    buffer: UInt64 = 0
    cached: UInt64 = 0
    swapCached: UInt64 = 0
    swapTotal: UInt64 = 0
    swapFree: UInt64 = 0
    mapped: UInt64 = 0
    vmallocTotal: UInt64 = 0
    vmallocUsed: UInt64 = 0
    vmallocChunk: UInt64 = 0
    hugePagesTotal: UInt64 = 0
    hugePagesFree: UInt64 = 0
    hugePagesRsvd: UInt64 = 0
    hugePagesSurp: UInt64 = 0
    hugePageSize: UInt64 = 0
    anonHugePage: UInt64 = 0


class MemStat(_Stat):
    memSwapDevices: list[MemSwapDevice] = Field(
        default_factory=list, validation_alias=_either("memSwapDevices", "swapDevices")
    )
    memSwapMemory: MemSwapMemory = Field(
        default_factory=MemSwapMemory, validation_alias=_either("memSwapMemory", "swapMemory")
    )
    memVirtual: MemVirtual = Field(default_factory=MemVirtual, validation_alias=_either("memVirtual", "virtual"))


class NetIo(_Stat):
    name: str = ""
    bytesSent: UInt64 = 0
    bytesRecv: UInt64 = 0
    packetsSent: UInt64 = 0
    packetsRecv: UInt64 = 0


class NetInterface(_Stat):
    index: Int64 = 0
    mtu: Int64 = 0
    name: str = ""
    hardwareAddr: str = ""
    flags: list[str] = Field(default_factory=list)
    addrs: list[str] = Field(default_factory=list)


class NetStat(_Stat):
    netIos: list[NetIo] = Field(default_factory=list)
    netInterfaces: list[NetInterface] = Field(default_factory=list)


class ProcessMemoryInfo(_Stat):
    rss: UInt64 = 0
    vms: UInt64 = 0
    hwm: UInt64 = 0
    data: UInt64 = 0
    stack: UInt64 = 0
    locked: UInt64 = 0
    swap: UInt64 = 0


class ProcessRLimit(_Stat):
    resource: Int32 = 0
    soft: UInt64 = 0
    hard: UInt64 = 0
    used: UInt64 = 0


class ProcessInfo(_Stat):
    background: bool = False
    cpuPercent: float = 0.0
    children: list[Int32] = Field(default_factory=list)
    cmdline: str = ""
    environs: list[str] = Field(default_factory=list)
    ionice: Int32 = 0
    isRunning: bool = False
    processMemoryInfo: ProcessMemoryInfo = Field(
        default_factory=ProcessMemoryInfo, validation_alias=_either("processMemoryInfo", "memoryInfo")
    )
    memoryPercent: float = 0.0
    name: str = ""
    numFd: Int32 = 0
    numThread: Int32 = 0
    parent: Int32 = 0
    ppid: Int32 = 0
    processRlimit: list[ProcessRLimit] = Field(
        default_factory=list, validation_alias=_either("processRlimit", "rlimits")
    )
    statuss: list[str] = Field(default_factory=list, validation_alias=_either("statuss", "statuses"))
    uids: list[Int32] = Field(default_factory=list)
    username: str = ""


class ProcessStat(_Stat):
    processInfos: list[ProcessInfo] = Field(default_factory=list)


class NodeStat(_Stat):
    cpuStat: CpuStat = Field(default_factory=CpuStat, validation_alias=_either("cpuStat", "cpu"))
    diskStat: DiskStat = Field(default_factory=DiskStat, validation_alias=_either("diskStat", "disk"))
    dockerStat: DockerStat = Field(default_factory=DockerStat, validation_alias=_either("dockerStat", "docker"))
    hostStat: HostStat = Field(default_factory=HostStat, validation_alias=_either("hostStat", "host"))
    loadStat: LoadStat = Field(default_factory=LoadStat, validation_alias=_either("loadStat", "load"))
    memStat: MemStat = Field(default_factory=MemStat, validation_alias=_either("memStat", "mem"))
    netStat: NetStat = Field(default_factory=NetStat, validation_alias=_either("netStat", "net"))
    processStat: ProcessStat = Field(default_factory=ProcessStat, validation_alias=_either("processStat", "process"))


REPORT_FACETS: tuple[str, ...] = (
    "cpuReport",
    "diskReport",
    "dockerReport",
    "healthReport",
    "hostReport",
    "loadReport",
    "memReport",
    "netReport",
    "processReport",
)


class NodeReport(BaseModel):
    """每个 facet 一段由 GPT 生成的文字；GPT 不可用时为空串。"""

    cpuReport: str = ""
    diskReport: str = ""
    dockerReport: str = ""
    healthReport: str = ""
    hostReport: str = ""
    loadReport: str = ""
    memReport: str = ""
    netReport: str = ""
    processReport: str = ""
