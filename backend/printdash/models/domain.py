from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================
# 0) ENUMS
# ============================================================

class PrintState(str, Enum):
    PRINTING = "printing"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETE = "complete"
    ERROR = "error"
    READY = "ready"
    OFFLINE = "offline"

class VisibilityMode(str, Enum):
    OFFLINE = "offline"
    PRIVATE = "private"
    PUBLIC = "public"


class CamelModel(BaseModel):
    """Dashboard clients read camelCase keys; Python code uses snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================
# 1) TEMPERATURE HISTORY
# ============================================================

class HeaterHistory(BaseModel):
    temperatures: List[float] = Field(default_factory=list)
    targets: List[float] = Field(default_factory=list)
    powers: List[float] = Field(default_factory=list)


class TemperatureHistory(BaseModel):
    extruder: HeaterHistory = Field(default_factory=HeaterHistory)
    bed: HeaterHistory = Field(default_factory=HeaterHistory)
    timestamps: List[str] = Field(default_factory=list)


# ============================================================
# 2) SYSTEM STATS
# ============================================================

class MoonrakerProcessStats(CamelModel):
    time: float = 0.0
    cpu_usage: float = 0.0
    memory: float = 0.0
    mem_units: str = "kB"
    uptime: float = 0.0


class CpuUsage(CamelModel):
    total: float = 0.0
    cores: List[float] = Field(default_factory=list)


class HostMemory(CamelModel):
    total: float = 0.0
    available: float = 0.0
    used: float = 0.0


class HostStats(CamelModel):
    cpu_usage: CpuUsage = Field(default_factory=CpuUsage)
    memory: HostMemory = Field(default_factory=HostMemory)
    cpu_temp: Optional[float] = None
    uptime: float = 0.0


class NetworkInterfaceStats(CamelModel):
    rx_bytes: float = 0.0
    tx_bytes: float = 0.0
    bandwidth: float = 0.0


class ThrottledState(CamelModel):
    bits: int = 0
    flags: List[str] = Field(default_factory=list)


class SystemStats(CamelModel):
    moonraker: MoonrakerProcessStats = Field(default_factory=MoonrakerProcessStats)
    system: HostStats = Field(default_factory=HostStats)
    network: Dict[str, NetworkInterfaceStats] = Field(default_factory=dict)
    websocket_connections: int = 0
    throttled_state: ThrottledState = Field(default_factory=ThrottledState)


class CpuInfo(CamelModel):
    cpu_count: int = 0
    bits: str = ""
    processor: str = ""
    cpu_desc: str = ""
    model: str = ""
    total_memory: float = 0.0
    memory_units: str = "kB"


class Distribution(CamelModel):
    name: str = ""
    id: str = ""
    version: str = ""


class ServiceState(CamelModel):
    active_state: str = ""
    sub_state: str = ""


class SystemInfo(CamelModel):
    cpu_info: CpuInfo = Field(default_factory=CpuInfo)
    distribution: Distribution = Field(default_factory=Distribution)
    services: Dict[str, ServiceState] = Field(default_factory=dict)


class SystemStatsResponse(BaseModel):
    stats: SystemStats
    info: SystemInfo


# ============================================================
# 3) PRINTER STATUS & TOTALS
# ============================================================

class PrintJob(CamelModel):
    filename: Optional[str] = None
    state: PrintState = PrintState.OFFLINE
    progress: float = 0.0
    current_layer: Optional[int] = None
    total_layers: Optional[int] = None
    print_time: float = 0.0
    estimated_time_left: Optional[float] = None
    slicer_estimated_time: Optional[float] = None
    filament_used: float = 0.0


class HeaterReading(CamelModel):
    actual: float = 0.0
    target: float = 0.0
    power: float = 0.0


class HeaterReadings(CamelModel):
    extruder: HeaterReading = Field(default_factory=HeaterReading)
    bed: HeaterReading = Field(default_factory=HeaterReading)


class ToolPosition(CamelModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e: float = 0.0


class Speeds(CamelModel):
    current: float = 0.0
    factor: float = 1.0


class KlippySystem(CamelModel):
    klippy_state: str = "offline"
    klippy_message: str = ""
    homed_axes: str = ""


class FileProgress(CamelModel):
    name: Optional[str] = None
    size: int = 0
    position: int = 0


class PrinterStatus(CamelModel):
    print: PrintJob = Field(default_factory=PrintJob)
    temperatures: HeaterReadings = Field(default_factory=HeaterReadings)
    position: ToolPosition = Field(default_factory=ToolPosition)
    speeds: Speeds = Field(default_factory=Speeds)
    system: KlippySystem = Field(default_factory=KlippySystem)
    file: FileProgress = Field(default_factory=FileProgress)


class LifetimeStats(CamelModel):
    total_jobs: int = 0
    total_time: float = 0.0
    total_print_time: float = 0.0
    total_filament_used: float = 0.0
    longest_job: float = 0.0
    longest_print: float = 0.0


class ThumbnailInfo(BaseModel):
    width: int = 0
    height: int = 0
    size: int = 0
    relative_path: str = ""


class FileMetadata(BaseModel):
    """Slicer metadata Moonraker extracted from a gcode file."""
    filename: str
    size: Optional[int] = None
    modified: Optional[float] = None
    slicer: Optional[str] = None
    slicer_version: Optional[str] = None
    layer_height: Optional[float] = None
    first_layer_height: Optional[float] = None
    object_height: Optional[float] = None
    filament_total: Optional[float] = None
    estimated_time: Optional[float] = None
    thumbnails: List[ThumbnailInfo] = Field(default_factory=list)


# ============================================================
# 4) CAMERAS
# ============================================================

class WebcamConfig(BaseModel):
    """One entry of Moonraker's `/server/webcams/list`."""
    uid: str = ""
    enabled: bool = True
    name: str = ""
    location: str = ""
    service: str = ""
    icon: str = ""
    source: str = ""
    target_fps: int = 15
    target_fps_idle: int = 5
    # absent when the webcam config leaves it unset; each consumer picks its own default
    aspect_ratio: Optional[str] = None
    stream_url: str = ""
    snapshot_url: str = ""
    flip_horizontal: bool = False
    flip_vertical: bool = False
    rotation: int = 0


class Resolution(BaseModel):
    width: int
    height: int


class WebcamListResponse(BaseModel):
    webcams: List[WebcamConfig] = Field(default_factory=list)


class CameraInfoResponse(BaseModel):
    name: str
    service: str
    target_fps: int
    target_fps_idle: int
    # assumed to run at idle fps while not printing
    current_fps: int
    aspect_ratio: Optional[str] = None
    resolution: Resolution
    location: str
    enabled: bool
    stream_url: str
    snapshot_url: str


class CameraResolutionResponse(BaseModel):
    width: int
    height: int
    timestamp: str


class CameraDataResponse(CamelModel):
    webcams: List[WebcamConfig] = Field(default_factory=list)
    selected_camera: Optional[WebcamConfig] = None
    resolution: Optional[Resolution] = None


# ============================================================
# 5) MISC
# ============================================================

class HealthResponse(BaseModel):
    status: str
    ts: str
    printer_configured: bool = False


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
