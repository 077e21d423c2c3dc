"""
normalizer.py

Purpose:
  Pure functions mapping raw Moonraker JSON onto the dashboard's stable
  response schema.

Rules:
  - Never raise on missing or malformed upstream fields. Every field has a
    zero / empty default so clients always receive a structurally valid
    object.
  - Temperatures round to 1 decimal, power / duty values to 2 (half-up).
  - Temperature history is windowed to the last 300 samples (~5 minutes at
    1 Hz). Moonraker's store carries no per-sample timestamps, so they are
    synthesized at 1 s spacing counting back from `now`.
"""
from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from printdash.models.domain import (
    CpuInfo,
    CpuUsage,
    Distribution,
    FileMetadata,
    FileProgress,
    HeaterHistory,
    HeaterReading,
    HeaterReadings,
    HostMemory,
    HostStats,
    KlippySystem,
    LifetimeStats,
    MoonrakerProcessStats,
    NetworkInterfaceStats,
    PrintJob,
    PrinterStatus,
    PrintState,
    ServiceState,
    Speeds,
    SystemInfo,
    SystemStats,
    TemperatureHistory,
    ThrottledState,
    ThumbnailInfo,
    ToolPosition,
)

MAX_HISTORY_POINTS = 300

# Moonraker's proc_stats buffer only spans a short recent window
MIN_MOONRAKER_UPTIME_SPAN_S = 60.0

_CORE_KEY = re.compile(r"^cpu(\d+)$")


# ============================================================
# 0) COERCION HELPERS
# ============================================================

def _to_float(val: Any, default: float = 0.0) -> float:
    if val is None or isinstance(val, bool):
        return default
    try:
        out = float(val)
    except (TypeError, ValueError):
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return out


def _to_opt_float(val: Any) -> Optional[float]:
    if val is None:
        return None
    out = _to_float(val, default=math.nan)
    return None if math.isnan(out) else out


def _to_int(val: Any, default: int = 0) -> int:
    return int(_to_float(val, float(default)))


def _to_opt_int(val: Any) -> Optional[int]:
    out = _to_opt_float(val)
    return None if out is None else int(out)


def _to_str(val: Any, default: str = "") -> str:
    if val is None:
        return default
    return str(val)


def _dict(val: Any) -> Dict[str, Any]:
    return val if isinstance(val, dict) else {}


def _list(val: Any) -> List[Any]:
    return val if isinstance(val, list) else []


def _result(raw: Any) -> Dict[str, Any]:
    return _dict(_dict(raw).get("result"))


def round_half_up(value: float, digits: int) -> float:
    """Round like the dashboard's charts expect: 0.05 -> 0.1, not banker's rounding."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def round_temp(value: Any) -> float:
    return round_half_up(_to_float(value), 1)


def round_power(value: Any) -> float:
    return round_half_up(_to_float(value), 2)


# ============================================================
# 1) TEMPERATURE HISTORY
# ============================================================

def format_clock(epoch_s: float) -> str:
    """Local wall-clock `H:MM` label (hour unpadded, minutes padded)."""
    t = datetime.fromtimestamp(epoch_s)
    return f"{t.hour}:{t.minute:02d}"


def history_timestamps(count: int, now_s: float) -> List[str]:
    # index i (0 = oldest kept) maps to now - (count-1-i) seconds
    return [format_clock(now_s - (count - 1 - i)) for i in range(count)]


def _tail(values: Sequence[Any], n: int) -> List[Any]:
    if n <= 0:
        return []
    return list(values[-n:])


def _heater_window(raw_channel: Any, count: int) -> HeaterHistory:
    channel = _dict(raw_channel)
    temps = _list(channel.get("temperatures"))
    n = min(len(temps), count)

    # targets/powers are parallel to temperatures; pad short or missing ones with 0
    def _parallel(values: List[Any]) -> List[Any]:
        tail = _tail(values, n)
        return [0.0] * (n - len(tail)) + tail

    return HeaterHistory(
        temperatures=[round_temp(v) for v in _tail(temps, n)],
        targets=[_to_float(v) for v in _parallel(_list(channel.get("targets")))],
        powers=[round_power(v) for v in _parallel(_list(channel.get("powers")))],
    )


def normalize_temperature_history(raw: Any, now_s: float, max_points: int = MAX_HISTORY_POINTS) -> TemperatureHistory:
    store = _result(raw)
    extruder = store.get("extruder")
    bed = store.get("heater_bed")

    extruder_count = len(_list(_dict(extruder).get("temperatures")))
    bed_count = len(_list(_dict(bed).get("temperatures")))
    count = min(max(extruder_count, bed_count), max_points)

    return TemperatureHistory(
        extruder=_heater_window(extruder, count),
        bed=_heater_window(bed, count),
        timestamps=history_timestamps(count, now_s),
    )


def trim_history(history: TemperatureHistory, max_points: int) -> TemperatureHistory:
    """Newest `max_points` samples of an already windowed history."""
    if len(history.timestamps) <= max_points:
        return history

    def _trim(channel: HeaterHistory) -> HeaterHistory:
        return HeaterHistory(
            temperatures=_tail(channel.temperatures, max_points),
            targets=_tail(channel.targets, max_points),
            powers=_tail(channel.powers, max_points),
        )

    return TemperatureHistory(
        extruder=_trim(history.extruder),
        bed=_trim(history.bed),
        timestamps=_tail(history.timestamps, max_points),
    )


def empty_temperature_history() -> TemperatureHistory:
    return TemperatureHistory()


# ============================================================
# 2) SYSTEM STATS
# ============================================================

def extract_core_usage(system_cpu_usage: Dict[str, Any]) -> List[float]:
    """Per-core usage from keys shaped `cpu<N>`, placed at index N."""
    by_index: Dict[int, float] = {}
    for key, val in system_cpu_usage.items():
        m = _CORE_KEY.match(str(key))
        if m:
            by_index[int(m.group(1))] = _to_float(val)
    if not by_index:
        return []
    cores = [0.0] * (max(by_index) + 1)
    for idx, usage in by_index.items():
        cores[idx] = usage
    return cores


def moonraker_uptime(samples: List[Dict[str, Any]], system_uptime: float) -> float:
    """
    Span between the oldest and newest proc_stats samples. The buffer only
    holds a short recent window, so a span under 60 s falls back to host
    uptime.
    """
    times = [_to_float(s.get("time")) for s in samples if isinstance(s, dict) and s.get("time") is not None]
    if len(times) >= 2:
        span = max(times) - min(times)
        if span >= MIN_MOONRAKER_UPTIME_SPAN_S:
            return span
    return system_uptime


def normalize_system_stats(raw_stats: Any, raw_info: Any, now_s: float) -> SystemStats:
    proc = _result(raw_stats)
    system_info = _dict(_result(raw_info).get("system_info"))

    raw_samples = proc.get("moonraker_stats")
    if isinstance(raw_samples, list):
        samples = [s for s in raw_samples if isinstance(s, dict)]
    elif isinstance(raw_samples, dict):
        samples = [raw_samples]
    else:
        samples = []
    latest = samples[-1] if samples else {}

    cpu_usage = _dict(proc.get("system_cpu_usage"))
    system_memory = _dict(proc.get("system_memory"))
    cpu_info = _dict(system_info.get("cpu_info"))
    throttled = _dict(proc.get("throttled_state"))
    system_uptime = _to_float(proc.get("system_uptime"))

    network: Dict[str, NetworkInterfaceStats] = {}
    for iface, data in _dict(proc.get("network")).items():
        data = _dict(data)
        network[str(iface)] = NetworkInterfaceStats(
            rx_bytes=_to_float(data.get("rx_bytes")),
            tx_bytes=_to_float(data.get("tx_bytes")),
            bandwidth=_to_float(data.get("bandwidth")),
        )

    return SystemStats(
        moonraker=MoonrakerProcessStats(
            time=_to_float(latest.get("time"), now_s),
            cpu_usage=_to_float(latest.get("cpu_usage")),
            memory=_to_float(latest.get("memory")),
            mem_units=_to_str(latest.get("mem_units"), "kB"),
            uptime=moonraker_uptime(samples, system_uptime),
        ),
        system=HostStats(
            cpu_usage=CpuUsage(
                total=_to_float(cpu_usage.get("cpu")),
                cores=extract_core_usage(cpu_usage),
            ),
            memory=HostMemory(
                total=_to_float(cpu_info.get("total_memory")),
                available=_to_float(system_memory.get("available")),
                used=_to_float(system_memory.get("used")),
            ),
            cpu_temp=_to_opt_float(proc.get("cpu_temp")),
            uptime=system_uptime,
        ),
        network=network,
        websocket_connections=_to_int(proc.get("websocket_connections")),
        throttled_state=ThrottledState(
            bits=_to_int(throttled.get("bits")),
            flags=[str(f) for f in _list(throttled.get("flags"))],
        ),
    )


def normalize_system_info(raw_info: Any) -> SystemInfo:
    system_info = _dict(_result(raw_info).get("system_info"))
    cpu_info = _dict(system_info.get("cpu_info"))
    distribution = _dict(system_info.get("distribution"))

    services: Dict[str, ServiceState] = {}
    for name, data in _dict(system_info.get("service_state")).items():
        data = _dict(data)
        services[str(name)] = ServiceState(
            active_state=_to_str(data.get("active_state")),
            sub_state=_to_str(data.get("sub_state")),
        )

    return SystemInfo(
        cpu_info=CpuInfo(
            cpu_count=_to_int(cpu_info.get("cpu_count")),
            bits=_to_str(cpu_info.get("bits")),
            processor=_to_str(cpu_info.get("processor")),
            cpu_desc=_to_str(cpu_info.get("cpu_desc")),
            model=_to_str(cpu_info.get("model")),
            total_memory=_to_float(cpu_info.get("total_memory")),
            memory_units=_to_str(cpu_info.get("memory_units"), "kB"),
        ),
        distribution=Distribution(
            name=_to_str(distribution.get("name")),
            id=_to_str(distribution.get("id")),
            version=_to_str(distribution.get("version")),
        ),
        services=services,
    )


# ============================================================
# 3) PRINTER STATUS
# ============================================================

_PRINT_STATES = {
    "printing": PrintState.PRINTING,
    "paused": PrintState.PAUSED,
    "cancelled": PrintState.CANCELLED,
    "complete": PrintState.COMPLETE,
    "error": PrintState.ERROR,
}


def map_print_state(print_stats_state: Any, klippy_state: Any) -> PrintState:
    state = _to_str(print_stats_state).lower()
    if state in _PRINT_STATES:
        return _PRINT_STATES[state]
    # standby, empty or unknown
    return PrintState.READY if _to_str(klippy_state) == "ready" else PrintState.OFFLINE


def needs_time_estimate(raw_objects: Any) -> bool:
    status = _dict(_result(raw_objects).get("status"))
    state = _to_str(_dict(status.get("print_stats")).get("state")).lower()
    return state == "printing" and _to_float(_dict(status.get("virtual_sdcard")).get("progress")) > 0


def progress_time_left(elapsed: float, progress: float) -> Optional[float]:
    if progress <= 0:
        return None
    return max(0.0, elapsed / progress - elapsed)


def file_basename(path: Any) -> Optional[str]:
    if not path:
        return None
    name = str(path).split("/")[-1]
    return name or None


def current_filename(raw_objects: Any) -> Optional[str]:
    status = _dict(_result(raw_objects).get("status"))
    return file_basename(_dict(status.get("virtual_sdcard")).get("file_path"))


def normalize_printer_status(
    raw_objects: Any,
    raw_info: Any,
    raw_metadata: Any = None,
) -> PrinterStatus:
    """
    Build the status view. `raw_metadata` is the optional file metadata
    response used for the slicer estimate; without it the time left is
    derived from progress.
    """
    status = _dict(_result(raw_objects).get("status"))
    info = _result(raw_info)

    print_stats = _dict(status.get("print_stats"))
    sdcard = _dict(status.get("virtual_sdcard"))
    extruder = _dict(status.get("extruder"))
    bed = _dict(status.get("heater_bed"))
    toolhead = _dict(status.get("toolhead"))
    gcode_move = _dict(status.get("gcode_move"))
    layer_info = _dict(print_stats.get("info"))

    elapsed = _to_float(print_stats.get("print_duration"))
    progress = _to_float(sdcard.get("progress"))

    estimated_left: Optional[float] = None
    slicer_estimate: Optional[float] = None
    if needs_time_estimate(raw_objects):
        slicer_estimate = _to_opt_float(_result(raw_metadata).get("estimated_time")) or None
        if slicer_estimate is not None:
            estimated_left = max(0.0, slicer_estimate - elapsed)
        else:
            estimated_left = progress_time_left(elapsed, progress)

    position = _list(toolhead.get("position"))
    coords = [_to_float(position[i]) if i < len(position) else 0.0 for i in range(4)]
    filename = file_basename(sdcard.get("file_path"))

    return PrinterStatus(
        print=PrintJob(
            filename=filename,
            state=map_print_state(print_stats.get("state"), info.get("state")),
            progress=progress,
            current_layer=_to_opt_int(layer_info.get("current_layer")),
            total_layers=_to_opt_int(layer_info.get("total_layer")),
            print_time=elapsed,
            estimated_time_left=estimated_left,
            slicer_estimated_time=slicer_estimate,
            filament_used=_to_float(print_stats.get("filament_used")),
        ),
        temperatures=HeaterReadings(
            extruder=HeaterReading(
                actual=round_temp(extruder.get("temperature")),
                target=_to_float(extruder.get("target")),
                power=round_power(extruder.get("power")),
            ),
            bed=HeaterReading(
                actual=round_temp(bed.get("temperature")),
                target=_to_float(bed.get("target")),
                power=round_power(bed.get("power")),
            ),
        ),
        position=ToolPosition(x=coords[0], y=coords[1], z=coords[2], e=coords[3]),
        speeds=Speeds(
            current=_to_float(gcode_move.get("speed")),
            factor=_to_float(gcode_move.get("speed_factor"), 1.0) or 1.0,
        ),
        system=KlippySystem(
            klippy_state=_to_str(info.get("state"), "offline"),
            klippy_message=_to_str(info.get("state_message")),
            homed_axes=_to_str(toolhead.get("homed_axes")),
        ),
        file=FileProgress(
            name=filename,
            size=_to_int(sdcard.get("file_size")),
            position=_to_int(sdcard.get("file_position")),
        ),
    )


def offline_printer_status(message: str = "Printer offline or unreachable") -> PrinterStatus:
    return PrinterStatus(system=KlippySystem(klippy_state="offline", klippy_message=message))


def redact_filename(filename: Optional[str]) -> Optional[str]:
    """Replace the stem with block glyphs of the same length, keep the extension."""
    if not filename:
        return filename
    dot = filename.rfind(".")
    if dot > 0:
        return "█" * dot + filename[dot:]
    return "█" * len(filename)


def apply_private_mode(status: PrinterStatus) -> PrinterStatus:
    """Redact what identifies the job; layer numbers become -1 when present."""
    job = status.print.model_copy(
        update={
            "filename": redact_filename(status.print.filename),
            "current_layer": -1 if status.print.current_layer else None,
            "total_layers": -1 if status.print.total_layers else None,
        }
    )
    file = status.file.model_copy(update={"name": redact_filename(status.file.name)})
    return status.model_copy(update={"print": job, "file": file})


# ============================================================
# 4) LIFETIME TOTALS
# ============================================================

def normalize_lifetime_stats(raw: Any) -> LifetimeStats:
    totals = _dict(_result(raw).get("job_totals"))
    return LifetimeStats(
        total_jobs=_to_int(totals.get("total_jobs")),
        total_time=_to_float(totals.get("total_time")),
        total_print_time=_to_float(totals.get("total_print_time")),
        total_filament_used=_to_float(totals.get("total_filament_used")),
        longest_job=_to_float(totals.get("longest_job")),
        longest_print=_to_float(totals.get("longest_print")),
    )


# ============================================================
# 5) FILE METADATA
# ============================================================

def normalize_file_metadata(raw: Any, filename: str) -> FileMetadata:
    """Slicer fields are optional; Moonraker omits whatever the slicer did not write."""
    meta = _result(raw)

    thumbnails: List[ThumbnailInfo] = []
    for thumb in _list(meta.get("thumbnails")):
        thumb = _dict(thumb)
        if not thumb.get("relative_path"):
            continue
        thumbnails.append(
            ThumbnailInfo(
                width=_to_int(thumb.get("width")),
                height=_to_int(thumb.get("height")),
                size=_to_int(thumb.get("size")),
                relative_path=_to_str(thumb.get("relative_path")),
            )
        )

    return FileMetadata(
        filename=_to_str(meta.get("filename")) or filename,
        size=_to_opt_int(meta.get("size")),
        modified=_to_opt_float(meta.get("modified")),
        slicer=meta.get("slicer") if isinstance(meta.get("slicer"), str) else None,
        slicer_version=meta.get("slicer_version") if isinstance(meta.get("slicer_version"), str) else None,
        layer_height=_to_opt_float(meta.get("layer_height")),
        first_layer_height=_to_opt_float(meta.get("first_layer_height")),
        object_height=_to_opt_float(meta.get("object_height")),
        filament_total=_to_opt_float(meta.get("filament_total")),
        estimated_time=_to_opt_float(meta.get("estimated_time")),
        thumbnails=thumbnails,
    )
