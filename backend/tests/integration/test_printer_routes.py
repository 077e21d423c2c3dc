import httpx

from printdash.services.cache import PRINTER_STATUS_TTL_MS, SYSTEM_STATS_TTL_MS, TEMPERATURE_HISTORY_TTL_MS

PROC_STATS = {
    "result": {
        "moonraker_stats": [
            {"time": 1000.0, "cpu_usage": 1.5, "memory": 40000, "mem_units": "kB"},
            {"time": 1002.0, "cpu_usage": 2.0, "memory": 40100, "mem_units": "kB"},
        ],
        "throttled_state": {"bits": 0, "flags": []},
        "cpu_temp": 45.1,
        "network": {"eth0": {"rx_bytes": 10, "tx_bytes": 20, "bandwidth": 1.5}},
        "system_cpu_usage": {"cpu": 8.0, "cpu0": 6.0, "cpu1": 10.0},
        "system_memory": {"total": 1000, "available": 600, "used": 400},
        "system_uptime": 3600.0,
        "websocket_connections": 2,
    }
}

SYSTEM_INFO = {
    "result": {
        "system_info": {
            "cpu_info": {"cpu_count": 2, "total_memory": 1000, "memory_units": "kB", "model": "Pi"},
            "distribution": {"name": "Debian", "id": "debian", "version": "12"},
            "service_state": {"klipper": {"active_state": "active", "sub_state": "running"}},
        }
    }
}

OBJECTS = {
    "result": {
        "status": {
            "extruder": {"temperature": 210.04, "target": 210.0, "power": 0.5},
            "heater_bed": {"temperature": 59.96, "target": 60.0, "power": 0.2},
            "print_stats": {
                "state": "printing",
                "print_duration": 300.0,
                "info": {"current_layer": 5, "total_layer": 40},
            },
            "virtual_sdcard": {"file_path": "parts/bracket.gcode", "progress": 0.5},
            "toolhead": {"homed_axes": "xyz", "position": [1.0, 2.0, 3.0, 4.0]},
            "gcode_move": {"speed": 1500.0, "speed_factor": 1.0},
        }
    }
}

PRINTER_INFO = {"result": {"state": "ready", "state_message": "Printer is ready"}}


def _script_printer(moonraker):
    moonraker.json("/printer/objects/query", OBJECTS)
    moonraker.json("/printer/info", PRINTER_INFO)
    moonraker.json("/server/files/metadata", {"result": {"estimated_time": 1000.0}})


# ============================================================
# HEALTH
# ============================================================

def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert "ts" in body
    assert body["printer_configured"] is True


def test_health_reports_missing_host(unconfigured_client):
    r = unconfigured_client.get("/health")
    assert r.status_code == 200
    assert r.json()["printer_configured"] is False


# ============================================================
# SYSTEM STATS
# ============================================================

def test_system_stats_success(client, moonraker):
    moonraker.json("/machine/proc_stats", PROC_STATS)
    moonraker.json("/machine/system_info", SYSTEM_INFO)

    r = client.get("/printer/system-stats")
    assert r.status_code == 200
    body = r.json()
    assert body["stats"]["system"]["cpuUsage"]["cores"] == [6.0, 10.0]
    assert body["stats"]["system"]["memory"]["total"] == 1000
    assert body["stats"]["moonraker"]["uptime"] == 3600.0
    assert body["stats"]["websocketConnections"] == 2
    assert body["info"]["cpuInfo"]["cpuCount"] == 2
    assert body["info"]["services"]["klipper"]["subState"] == "running"


def test_system_stats_upstream_500_is_503(client, moonraker):
    moonraker.json("/machine/proc_stats", {"error": "boom"}, status=500)
    moonraker.json("/machine/system_info", SYSTEM_INFO)

    r = client.get("/printer/system-stats")
    assert r.status_code == 503
    assert r.json()["error"] == "Failed to fetch system stats"


def test_system_stats_unreachable_is_503(client, moonraker):
    moonraker.fail("/machine/proc_stats", httpx.ConnectError)
    moonraker.json("/machine/system_info", SYSTEM_INFO)

    r = client.get("/printer/system-stats")
    assert r.status_code == 503
    assert r.json()["error"] == "Failed to fetch system stats"


def test_system_stats_cached_within_ttl(client, moonraker, clock):
    moonraker.json("/machine/proc_stats", PROC_STATS)
    moonraker.json("/machine/system_info", SYSTEM_INFO)

    first = client.get("/printer/system-stats").json()
    clock.advance(SYSTEM_STATS_TTL_MS - 1)
    second = client.get("/printer/system-stats").json()
    assert first == second
    assert moonraker.count("/machine/proc_stats") == 1

    clock.advance(1)
    client.get("/printer/system-stats")
    assert moonraker.count("/machine/proc_stats") == 2


def test_system_stats_without_host_is_500(unconfigured_client, moonraker):
    r = unconfigured_client.get("/printer/system-stats")
    assert r.status_code == 500
    assert "PRINTER_HOST" in r.json()["error"]
    assert moonraker.calls == []


# ============================================================
# TEMPERATURE HISTORY
# ============================================================

def _temperature_store(n):
    return {
        "result": {
            "extruder": {"temperatures": [200.0] * n, "targets": [200.0] * n, "powers": [0.4] * n},
            "heater_bed": {"temperatures": [60.0] * n, "targets": [60.0] * n, "powers": [0.1] * n},
        }
    }


def test_temperature_history_windowed(client, moonraker):
    moonraker.json("/server/temperature_store", _temperature_store(400))

    r = client.get("/printer/temperature-history")
    assert r.status_code == 200
    body = r.json()
    assert len(body["timestamps"]) == 300
    assert len(body["extruder"]["temperatures"]) == 300
    assert len(body["bed"]["powers"]) == 300


def test_temperature_history_max_points(client, moonraker):
    moonraker.json("/server/temperature_store", _temperature_store(120))

    body = client.get("/printer/temperature-history", params={"max_points": 30}).json()
    assert len(body["timestamps"]) == 30
    assert len(body["extruder"]["temperatures"]) == 30


def test_temperature_history_invalid_max_points_is_400(client):
    r = client.get("/printer/temperature-history", params={"max_points": 0})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request"

    r = client.get("/printer/temperature-history", params={"max_points": 301})
    assert r.status_code == 400


def test_temperature_history_unreachable_is_empty_200(client, moonraker):
    moonraker.fail("/server/temperature_store", httpx.ConnectError)

    r = client.get("/printer/temperature-history")
    assert r.status_code == 200
    body = r.json()
    assert body["timestamps"] == []
    assert body["extruder"] == {"temperatures": [], "targets": [], "powers": []}
    assert body["bed"] == {"temperatures": [], "targets": [], "powers": []}


def test_temperature_history_failure_is_not_cached(client, moonraker):
    moonraker.fail("/server/temperature_store", httpx.ReadTimeout)
    assert client.get("/printer/temperature-history").json()["timestamps"] == []

    moonraker.json("/server/temperature_store", _temperature_store(10))
    assert len(client.get("/printer/temperature-history").json()["timestamps"]) == 10


def test_temperature_history_cached(client, moonraker, clock):
    moonraker.json("/server/temperature_store", _temperature_store(10))
    client.get("/printer/temperature-history")
    clock.advance(TEMPERATURE_HISTORY_TTL_MS - 1)
    client.get("/printer/temperature-history")
    assert moonraker.count("/server/temperature_store") == 1


def test_temperature_history_without_host_is_empty(unconfigured_client):
    r = unconfigured_client.get("/printer/temperature-history")
    assert r.status_code == 200
    assert r.json()["timestamps"] == []


# ============================================================
# PRINTER STATUS
# ============================================================

def test_status_public(client, moonraker):
    _script_printer(moonraker)

    r = client.get("/printer/status")
    assert r.status_code == 200
    body = r.json()
    assert body["print"]["state"] == "printing"
    assert body["print"]["filename"] == "bracket.gcode"
    assert body["print"]["estimatedTimeLeft"] == 700.0
    assert body["print"]["currentLayer"] == 5
    assert body["temperatures"]["extruder"]["actual"] == 210.0
    assert body["temperatures"]["bed"]["actual"] == 60.0
    assert body["system"]["klippyState"] == "ready"


def test_status_metadata_failure_uses_progress_estimate(client, moonraker):
    moonraker.json("/printer/objects/query", OBJECTS)
    moonraker.json("/printer/info", PRINTER_INFO)

    body = client.get("/printer/status").json()
    # 300 s at 50% -> 300 s left
    assert body["print"]["estimatedTimeLeft"] == 300.0


def test_status_private_mode_redacts(client, moonraker, save_settings):
    _script_printer(moonraker)
    save_settings(visibility_mode="private")

    body = client.get("/printer/status").json()
    assert body["print"]["filename"] == "███████.gcode"
    assert body["file"]["name"] == "███████.gcode"
    assert body["print"]["currentLayer"] == -1
    assert body["print"]["totalLayers"] == -1
    assert body["temperatures"]["extruder"]["actual"] == 210.0


def test_status_offline_mode_skips_upstream(client, moonraker, save_settings):
    _script_printer(moonraker)
    save_settings(visibility_mode="offline")

    body = client.get("/printer/status").json()
    assert body["print"]["state"] == "offline"
    assert body["system"]["klippyState"] == "offline"
    assert moonraker.calls == []


def test_status_newest_settings_row_wins(client, moonraker, save_settings):
    _script_printer(moonraker)
    save_settings(visibility_mode="offline")
    save_settings(visibility_mode="public")

    body = client.get("/printer/status").json()
    assert body["print"]["filename"] == "bracket.gcode"


def test_status_unreachable_is_offline(client, moonraker):
    moonraker.fail("/printer/objects/query", httpx.ConnectError)
    moonraker.json("/printer/info", PRINTER_INFO)

    r = client.get("/printer/status")
    assert r.status_code == 200
    assert r.json()["print"]["state"] == "offline"


def test_status_cached(client, moonraker, clock):
    _script_printer(moonraker)
    client.get("/printer/status")
    clock.advance(PRINTER_STATUS_TTL_MS - 1)
    client.get("/printer/status")
    assert moonraker.count("/printer/objects/query") == 1


def test_status_without_host_is_offline(unconfigured_client):
    r = unconfigured_client.get("/printer/status")
    assert r.status_code == 200
    assert r.json()["system"]["klippyState"] == "offline"


# ============================================================
# LIFETIME STATS
# ============================================================

def test_lifetime_stats(client, moonraker):
    moonraker.json("/server/history/totals", {
        "result": {"job_totals": {"total_jobs": 7, "total_time": 100.0, "total_filament_used": 5000.5}}
    })

    body = client.get("/printer/lifetime-stats").json()
    assert body["totalJobs"] == 7
    assert body["totalFilamentUsed"] == 5000.5


def test_lifetime_stats_failure_is_zeros(client, moonraker):
    moonraker.json("/server/history/totals", {}, status=404)

    r = client.get("/printer/lifetime-stats")
    assert r.status_code == 200
    assert r.json()["totalJobs"] == 0


# ============================================================
# FILE METADATA
# ============================================================

def test_file_metadata(client, moonraker):
    moonraker.json("/server/files/metadata", {
        "result": {
            "filename": "parts/bracket.gcode",
            "size": 123456,
            "slicer": "PrusaSlicer",
            "slicer_version": "2.7.1",
            "layer_height": 0.2,
            "estimated_time": 5400,
            "thumbnails": [
                {"width": 32, "height": 32, "size": 900, "relative_path": ".thumbs/bracket-32x32.png"},
                {"width": 300, "height": 300, "size": 9000, "relative_path": ".thumbs/bracket-300x300.png"},
            ],
        }
    })

    r = client.get("/printer/file-metadata", params={"filename": "parts/bracket.gcode"})
    assert r.status_code == 200
    body = r.json()
    assert body["filename"] == "parts/bracket.gcode"
    assert body["slicer"] == "PrusaSlicer"
    assert body["estimated_time"] == 5400.0
    assert body["object_height"] is None
    assert [t["width"] for t in body["thumbnails"]] == [32, 300]
    assert moonraker.calls[-1].url.params["filename"] == "parts/bracket.gcode"


def test_file_metadata_requires_filename(client, moonraker):
    r = client.get("/printer/file-metadata")
    assert r.status_code == 400
    assert r.json()["error"] == "Filename parameter is required"
    assert moonraker.calls == []


def test_file_metadata_upstream_failure_is_500(client, moonraker):
    r = client.get("/printer/file-metadata", params={"filename": "missing.gcode"})
    assert r.status_code == 500
    assert r.json()["error"] == "Failed to fetch file metadata"
    assert "404" in r.json()["details"]


def test_file_metadata_without_host_is_500(unconfigured_client):
    r = unconfigured_client.get("/printer/file-metadata", params={"filename": "a.gcode"})
    assert r.status_code == 500
    assert "PRINTER_HOST" in r.json()["error"]


# ============================================================
# THUMBNAIL
# ============================================================

def test_thumbnail_passthrough(client, moonraker):
    moonraker.raw("/server/files/gcodes/.thumbs/bracket-300x300.png", b"\x89PNG", content_type="image/png")

    r = client.get("/printer/thumbnail", params={"path": ".thumbs/bracket-300x300.png"})
    assert r.status_code == 200
    assert r.content == b"\x89PNG"
    assert r.headers["content-type"] == "image/png"
    assert r.headers["cache-control"] == "public, max-age=3600"


def test_thumbnail_requires_path(client):
    r = client.get("/printer/thumbnail")
    assert r.status_code == 400
    assert r.json()["error"] == "Path parameter is required"


def test_thumbnail_upstream_failure_is_500(client, moonraker):
    moonraker.fail("/server/files/gcodes/.thumbs/x.png", httpx.ConnectError)
    r = client.get("/printer/thumbnail", params={"path": ".thumbs/x.png"})
    assert r.status_code == 500
    assert r.json()["error"] == "Failed to fetch thumbnail"


# ============================================================
# API SCHEMA
# ============================================================

def test_error_body_is_documented(client):
    schema = client.get("/openapi.json").json()
    assert "ErrorResponse" in schema["components"]["schemas"]

    responses = schema["paths"]["/printer/system-stats"]["get"]["responses"]
    assert responses["503"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
