"""
NodeStat 采集（在目标节点上运行，基于 psutil）。

说明：
- 采样窗口：cpu 百分比（整机与进程）在 `duration` 秒内采样
- psutil 覆盖不到的字段从 /proc 读取（meminfo/swaps/stat/<pid>/status）
- docker 部分尽力而为：docker 不可用时该部分为空，不影响其他部分
- 单个进程消失或无权限时跳过该进程
"""

from __future__ import annotations

import logging
import os
import platform
import resource
import socket
import subprocess
import sys
from pathlib import Path

import psutil

from insight.proto.node import (
    CGroupDockerStat,
    CGroupMemDocker,
    CpuStat,
    CpuTime,
    DiskPartition,
    DiskStat,
    DiskUsage,
    DockerStat,
    HostStat,
    LoadAvg,
    LoadMisc,
    LoadStat,
    MemStat,
    MemSwapDevice,
    MemSwapMemory,
    MemVirtual,
    NetInterface,
    NetIo,
    NetStat,
    NodeStat,
    ProcessInfo,
    ProcessMemoryInfo,
    ProcessRLimit,
    ProcessStat,
)

logger = logging.getLogger(__name__)

PROC = Path("/proc")
CGROUP_CPU = Path("/sys/fs/cgroup/cpuacct/docker")
CGROUP_MEM = Path("/sys/fs/cgroup/memory/docker")
OS_RELEASE = Path("/etc/os-release")
MACHINE_ID = Path("/etc/machine-id")

KIB = 1024
UINT64_MAX = 2**64 - 1

DOCKER_PS = ["docker", "ps", "-a", "--no-trunc", "--format", "{{.ID}}\t{{.Names}}\t{{.Image}}\t{{.Status}}"]
DOCKER_TIMEOUT = 10.0

# /proc/meminfo key -> MemVirtual 字段（kB 值换算成字节）
_MEMINFO_BYTES = {
    "SwapCached": "swapCached",
    "SwapTotal": "swapTotal",
    "SwapFree": "swapFree",
    "Mapped": "mapped",
    "VmallocTotal": "vmallocTotal",
    "VmallocUsed": "vmallocUsed",
    "VmallocChunk": "vmallocChunk",
    "Hugepagesize": "hugePageSize",
    "AnonHugePages": "anonHugePage",
}
_MEMINFO_COUNTS = {
    "HugePages_Total": "hugePagesTotal",
    "HugePages_Free": "hugePagesFree",
    "HugePages_Rsvd": "hugePagesRsvd",
    "HugePages_Surp": "hugePagesSurp",
}

_RLIMITS = (
    resource.RLIMIT_CPU,
    resource.RLIMIT_FSIZE,
    resource.RLIMIT_DATA,
    resource.RLIMIT_STACK,
    resource.RLIMIT_CORE,
    resource.RLIMIT_RSS,
    resource.RLIMIT_NPROC,
    resource.RLIMIT_NOFILE,
    resource.RLIMIT_MEMLOCK,
    resource.RLIMIT_AS,
)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def _read_kv(path: Path, separator: str = ":") -> dict[str, int]:
    """`key<sep> value [unit]` 格式的文件 -> {key: int}；无法解析的行忽略。"""
    values: dict[str, int] = {}
    for line in _read_text(path).splitlines():
        key, _, rest = line.partition(separator) if separator else line.partition(" ")
        fields = rest.split()
        if not fields:
            continue
        try:
            values[key.strip()] = int(fields[0])
        except ValueError:
            continue
    return values


def _read_int(path: Path) -> int:
    text = _read_text(path).strip()
    try:
        return int(text)
    except ValueError:
        return 0


def _unsigned(value: int) -> int:
    return UINT64_MAX if value < 0 else min(value, UINT64_MAX)


# ---------- cpu ----------


def fetch_cpu_stat(duration: float) -> CpuStat:
    times = psutil.cpu_times(percpu=False)
    return CpuStat(
        physicalCount=psutil.cpu_count(logical=False) or 0,
        logicalCount=psutil.cpu_count(logical=True) or 0,
        cpuPercents=psutil.cpu_percent(interval=duration, percpu=True),
        cpuTimes=[
            CpuTime(
                cpu="cpu-total",
                user=times.user,
                system=times.system,
                idle=times.idle,
                nice=getattr(times, "nice", 0.0),
                iowait=getattr(times, "iowait", 0.0),
                irq=getattr(times, "irq", 0.0),
                softirq=getattr(times, "softirq", 0.0),
                steal=getattr(times, "steal", 0.0),
                guest=getattr(times, "guest", 0.0),
                guestNice=getattr(times, "guest_nice", 0.0),
            )
        ],
    )


# ---------- disk ----------


def fetch_disk_stat() -> DiskStat:
    usage = psutil.disk_usage("/")
    partitions = psutil.disk_partitions(all=False)
    root_fstype = next((p.fstype for p in partitions if p.mountpoint == "/"), "")
    return DiskStat(
        diskPartitions=[
            DiskPartition(device=p.device, mountpoint=p.mountpoint, fstype=p.fstype, opts=p.opts.split(","))
            for p in partitions
        ],
        diskUsage=DiskUsage(
            path="/",
            fstype=root_fstype,
            total=usage.total,
            free=usage.free,
            used=usage.used,
            usedPercent=usage.percent,
        ),
    )


# ---------- docker ----------


def _docker_containers() -> list[CGroupDockerStat]:
    result = subprocess.run(DOCKER_PS, capture_output=True, text=True, check=True, timeout=DOCKER_TIMEOUT)
    containers: list[CGroupDockerStat] = []
    for line in result.stdout.splitlines():
        fields = line.split("\t")
        if len(fields) != 4:
            continue
        container_id, name, image, status = fields
        containers.append(
            CGroupDockerStat(
                containerId=container_id,
                name=name,
                image=image,
                status=status,
                running=status.startswith("Up"),
            )
        )
    return containers


def _docker_memory(container_id: str) -> CGroupMemDocker | None:
    base = CGROUP_MEM / container_id
    if not base.is_dir():
        return None
    stat = _read_kv(base / "memory.stat", separator="")
    return CGroupMemDocker(
        cache=stat.get("cache", 0),
        rss=stat.get("rss", 0),
        rssHuge=stat.get("rss_huge", 0),
        mappedFile=stat.get("mapped_file", 0),
        totalCache=stat.get("total_cache", 0),
        totalRss=stat.get("total_rss", 0),
        totalRssHuge=stat.get("total_rss_huge", 0),
        totalMappedFile=stat.get("total_mapped_file", 0),
        memUsageInBytes=_unsigned(_read_int(base / "memory.usage_in_bytes")),
        memMaxUsageInBytes=_unsigned(_read_int(base / "memory.max_usage_in_bytes")),
        memLimitInBytes=_unsigned(_read_int(base / "memory.limit_in_bytes")),
    )


def fetch_docker_stat() -> DockerStat:
    """docker 不可用（未安装/无权限/超时）时返回空 DockerStat。"""
    try:
        containers = _docker_containers()
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug(f"Docker stat unavailable: {exc}")
        return DockerStat()

    stat = DockerStat(cgroupDockerStats=containers)
    for container in containers:
        usage = CGROUP_CPU / container.containerId / "cpuacct.usage"
        if usage.is_file():
            stat.cgroupCpuDockerUsages.append(_read_int(usage) / 1e9)
        memory = _docker_memory(container.containerId)
        if memory is not None:
            stat.cgroupMemDockers.append(memory)
    return stat


# ---------- host ----------


def _os_release() -> dict[str, str]:
    values: dict[str, str] = {}
    for line in _read_text(OS_RELEASE).splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip().strip('"')
    return values


def fetch_host_stat() -> HostStat:
    release = _os_release()
    return HostStat(
        hostname=socket.gethostname(),
        procs=len(psutil.pids()),
        os=sys.platform,
        platform=release.get("ID", ""),
        platformFamily=release.get("ID_LIKE", release.get("ID", "")),
        platformVersion=release.get("VERSION_ID", ""),
        kernelVersion=platform.release(),
        kernelArch=platform.machine(),
        hostID=_read_text(MACHINE_ID).strip(),
    )


# ---------- load ----------


def fetch_load_stat() -> LoadStat:
    load1, load5, load15 = os.getloadavg()
    stat = _read_kv(PROC / "stat", separator="")
    return LoadStat(
        loadAvg=LoadAvg(load1=load1, load5=load5, load15=load15),
        loadMisc=LoadMisc(
            procsTotal=len(psutil.pids()),
            procsCreated=stat.get("processes", 0),
            procsRunning=stat.get("procs_running", 0),
            procsBlocked=stat.get("procs_blocked", 0),
            ctxt=stat.get("ctxt", 0),
        ),
    )


# ---------- mem ----------


def _swap_devices() -> list[MemSwapDevice]:
    devices: list[MemSwapDevice] = []
    for line in _read_text(PROC / "swaps").splitlines()[1:]:
        fields = line.split()
        if len(fields) < 4:
            continue
        try:
            size, used = int(fields[2]) * KIB, int(fields[3]) * KIB
        except ValueError:
            continue
        devices.append(MemSwapDevice(name=fields[0], usedBytes=used, freeBytes=max(size - used, 0)))
    return devices


def fetch_mem_stat() -> MemStat:
    swap = psutil.swap_memory()
    virtual = psutil.virtual_memory()
    meminfo = _read_kv(PROC / "meminfo")
    extras: dict[str, int] = {field: meminfo.get(key, 0) * KIB for key, field in _MEMINFO_BYTES.items()}
    extras.update({field: meminfo.get(key, 0) for key, field in _MEMINFO_COUNTS.items()})
    return MemStat(
        memSwapDevices=_swap_devices(),
        memSwapMemory=MemSwapMemory(total=swap.total, used=swap.used, free=swap.free, usedPercent=swap.percent),
        memVirtual=MemVirtual(
            total=virtual.total,
            available=virtual.available,
            used=virtual.used,
            usedPercent=virtual.percent,
            free=virtual.free,
            buffer=getattr(virtual, "buffers", 0),
            cached=getattr(virtual, "cached", 0),
            **extras,
        ),
    )


# ---------- net ----------


def fetch_net_stat() -> NetStat:
    counters = psutil.net_io_counters(pernic=False)
    stats = psutil.net_if_stats()
    addrs = psutil.net_if_addrs()

    interfaces: list[NetInterface] = []
    for name, items in addrs.items():
        stat = stats.get(name)
        hardware = next((a.address for a in items if a.family == psutil.AF_LINK), "")
        try:
            index = socket.if_nametoindex(name)
        except OSError:
            index = 0
        flags = getattr(stat, "flags", "") if stat is not None else ""
        interfaces.append(
            NetInterface(
                index=index,
                mtu=stat.mtu if stat is not None else 0,
                name=name,
                hardwareAddr=hardware,
                flags=[f for f in flags.split(",") if f],
                addrs=[a.address for a in items if a.family != psutil.AF_LINK],
            )
        )

    return NetStat(
        netIos=[
            NetIo(
                name="all",
                bytesSent=counters.bytes_sent,
                bytesRecv=counters.bytes_recv,
                packetsSent=counters.packets_sent,
                packetsRecv=counters.packets_recv,
            )
        ],
        netInterfaces=interfaces,
    )


# ---------- process ----------


def _process_memory(proc: psutil.Process) -> ProcessMemoryInfo:
    info = proc.memory_info()
    status = _read_kv(PROC / str(proc.pid) / "status")
    return ProcessMemoryInfo(
        rss=info.rss,
        vms=info.vms,
        hwm=status.get("VmHWM", 0) * KIB,
        data=getattr(info, "data", 0),
        stack=status.get("VmStk", 0) * KIB,
        locked=status.get("VmLck", 0) * KIB,
        swap=status.get("VmSwap", 0) * KIB,
    )


def _process_rlimits(proc: psutil.Process, num_fds: int) -> list[ProcessRLimit]:
    limits: list[ProcessRLimit] = []
    for res in _RLIMITS:
        soft, hard = proc.rlimit(res)
        used = num_fds if res == resource.RLIMIT_NOFILE else 0
        limits.append(ProcessRLimit(resource=res, soft=_unsigned(soft), hard=_unsigned(hard), used=used))
    return limits


def _is_background(pid: int) -> bool:
    """/proc/<pid>/stat：进程组与终端前台进程组不同即为后台进程。"""
    stat = _read_text(PROC / str(pid) / "stat")
    fields = stat.rpartition(")")[2].split()
    if len(fields) < 6:
        return False
    return fields[2] != fields[5]


def _int32(value: int) -> int:
    return value - 2**32 if value >= 2**31 else value


def _allowed(call, default):
    """非 root 运行时很多字段读不到，读不到的字段取零值。"""
    try:
        return call()
    except psutil.AccessDenied:
        return default


def _process_info(proc: psutil.Process) -> ProcessInfo:
    with proc.oneshot():
        ppid = proc.ppid()
        num_fds = _allowed(proc.num_fds, 0)
        return ProcessInfo(
            background=_is_background(proc.pid),
            cpuPercent=_allowed(lambda: proc.cpu_percent(interval=None), 0.0),
            children=_allowed(lambda: [child.pid for child in proc.children()], []),
            cmdline=_allowed(lambda: " ".join(proc.cmdline()), ""),
            ionice=_allowed(lambda: int(proc.ionice().ioclass), 0),
            isRunning=proc.is_running(),
            processMemoryInfo=_allowed(lambda: _process_memory(proc), ProcessMemoryInfo()),
            memoryPercent=_allowed(proc.memory_percent, 0.0),
            name=proc.name(),
            numFd=num_fds,
            numThread=_allowed(proc.num_threads, 0),
            parent=ppid,
            ppid=ppid,
            processRlimit=_allowed(lambda: _process_rlimits(proc, num_fds), []),
            statuss=[proc.status()],
            uids=[_int32(uid) for uid in proc.uids()],
            username=_allowed(proc.username, ""),
        )


def fetch_process_stat(processes: list[psutil.Process]) -> ProcessStat:
    infos: list[ProcessInfo] = []
    for proc in processes:
        try:
            infos.append(_process_info(proc))
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as exc:
            logger.debug(f"Skip process {proc.pid}: {exc}")
    return ProcessStat(processInfos=infos)


def _prime_processes() -> list[psutil.Process]:
    """先取一次进程 cpu 计数，采样窗口结束后 `cpu_percent` 才有意义。"""
    processes: list[psutil.Process] = []
    for proc in psutil.process_iter():
        try:
            proc.cpu_percent(interval=None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        processes.append(proc)
    return processes


def collect_node_stat(duration: float) -> NodeStat:
    """采集一次完整 NodeStat；除 docker 外任一部分失败都直接抛出。"""
    processes = _prime_processes()
    logger.debug(f"Sampling cpu for {duration}s")
    return NodeStat(
        cpuStat=fetch_cpu_stat(duration),
        diskStat=fetch_disk_stat(),
        dockerStat=fetch_docker_stat(),
        hostStat=fetch_host_stat(),
        loadStat=fetch_load_stat(),
        memStat=fetch_mem_stat(),
        netStat=fetch_net_stat(),
        processStat=fetch_process_stat(processes),
    )
