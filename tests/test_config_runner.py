"""
Settings, the ops CLI, and the bundled reverse geocoder.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from geotag_core import runner
from geotag_core.config import AgentSettings, load_settings, save_settings
from geotag_core.constants import DEFAULT_BASE_URL, MAX_TICKS_PER_RUN
from geotag_core.errors import GeocodeFailed, NetworkError
from geotag_core.models import GeoTagEvent
from geotag_core.providers import NominatimGeocoder
from geotag_core.runner import Services
from geotag_core.state import SessionState

from conftest import FakeGeocoder, FakeLocation, FakeScheduler, make_response


# ─── Settings ────────────────────────────────────────────────────

def test_defaults_without_file_or_env(tmp_path):
    settings = load_settings(tmp_path / "config.json", environ={})
    assert settings == AgentSettings()
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.max_ticks_per_run == MAX_TICKS_PER_RUN


def test_file_then_env_override(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"base_url": "https://file.example.test", "max_ticks_per_run": 4}))

    settings = load_settings(path, environ={"GEOTAG_BASE_URL": "https://env.example.test"})

    assert settings.base_url == "https://env.example.test"
    assert settings.max_ticks_per_run == 4


def test_unknown_keys_and_bad_env_values_are_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"colour": "blue"}))

    settings = load_settings(path, environ={"GEOTAG_API_TIMEOUT": "soon"})

    assert settings == AgentSettings()


def test_max_ticks_is_clamped(tmp_path):
    settings = load_settings(tmp_path / "config.json", environ={"GEOTAG_MAX_TICKS": "0"})
    assert settings.max_ticks_per_run == 1


def test_corrupt_config_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{nope")
    assert load_settings(path, environ={}) == AgentSettings()


def test_save_then_load(tmp_path):
    path = tmp_path / "nested" / "config.json"
    save_settings(AgentSettings(max_ticks_per_run=3, resume_on_grant=False), path)

    settings = load_settings(path, environ={})

    assert settings.max_ticks_per_run == 3
    assert settings.resume_on_grant is False


# ─── Ops CLI ─────────────────────────────────────────────────────

@pytest.fixture
def services(saved_store, cache):
    return Services(AgentSettings(), saved_store, cache, MagicMock())


@pytest.fixture
def cli(monkeypatch, services):
    monkeypatch.setattr(runner, "setup_logging", lambda: None)
    monkeypatch.setattr(runner, "build_services", lambda: services)
    return runner.main


def _queue(cache, n):
    for i in range(n):
        cache.append(GeoTagEvent(f"{i} Marina Rd", 6.5, 3.3, f"2025-07-01T0{i}:00:00Z"))


def test_status(cli, services, capsys):
    _queue(services.cache, 2)

    assert cli(["status"]) == 0

    out = capsys.readouterr().out
    assert "customer cust-42" in out
    assert "Cached tags:   2" in out


def test_flush_delivers_queue(cli, services, capsys):
    _queue(services.cache, 3)

    assert cli(["flush"]) == 0

    assert services.client.submit_geotag.call_count == 3
    assert len(services.cache) == 0
    assert "Flushed 3 geotags, 0 still pending." in capsys.readouterr().out


def test_flush_reports_leftovers(cli, services):
    _queue(services.cache, 3)
    services.client.submit_geotag.side_effect = [None, NetworkError("offline")]

    assert cli(["flush"]) == 2
    assert len(services.cache) == 2


def test_flush_without_credentials(cli, services):
    services.store.clear()
    assert cli(["flush"]) == 1
    services.client.submit_geotag.assert_not_called()


def test_plan_without_pending_record(cli, services, capsys):
    services.client.fetch_pending_record.return_value = None
    assert cli(["plan", "--limit", "3"]) == 0
    assert "nothing to schedule" in capsys.readouterr().out


def test_plan_fetch_failure(cli, services):
    services.client.fetch_org_policy.side_effect = NetworkError("offline")
    assert cli(["plan"]) == 1


def test_version_flag(cli, capsys):
    with pytest.raises(SystemExit) as exc:
        cli(["--version"])
    assert exc.value.code == 0
    assert "geotag-agent 1.0.0" in capsys.readouterr().out


# ─── Reverse geocoder ────────────────────────────────────────────

def test_nominatim_returns_display_name(http_session):
    http_session.get.return_value = make_response(200, {"display_name": "12 Marina Rd, Lagos"})

    geocoder = NominatimGeocoder(session=http_session, url="https://geo.example.test/reverse", timeout=3)

    assert geocoder.reverse_geocode(6.5244, 3.3792) == "12 Marina Rd, Lagos"
    call = http_session.get.call_args
    assert call.args == ("https://geo.example.test/reverse",)
    assert call.kwargs["params"] == {"format": "jsonv2", "lat": 6.5244, "lon": 3.3792}
    assert call.kwargs["timeout"] == 3
    assert call.kwargs["headers"]["User-Agent"].startswith("geotag-agent/")


@pytest.mark.parametrize("response", [
    make_response(500, "down"),
    make_response(200, {"error": "Unable to geocode"}),
    make_response(200, ["not", "a", "dict"]),
    make_response(200, ValueError("not json")),
])
def test_nominatim_failures(http_session, response):
    http_session.get.return_value = response
    with pytest.raises(GeocodeFailed):
        NominatimGeocoder(session=http_session).reverse_geocode(6.5, 3.3)


def test_nominatim_transport_error(http_session):
    http_session.get.side_effect = requests.Timeout("slow")
    with pytest.raises(GeocodeFailed) as exc:
        NominatimGeocoder(session=http_session).reverse_geocode(6.5, 3.3)
    assert exc.value.latitude == 6.5


# ─── Wiring ──────────────────────────────────────────────────────

def test_build_agent_wires_one_instance(tmp_path):
    scheduler = FakeScheduler()
    settings = AgentSettings(base_url="https://api.example.test/v1/api", max_ticks_per_run=2)

    agent = runner.build_agent(
        FakeLocation(),
        geocoder=FakeGeocoder(),
        scheduler=scheduler,
        settings=settings,
        credentials_path=tmp_path / "credentials.json",
        cache_path=tmp_path / "pending.jsonl",
    )

    assert agent.services.client.base_url == "https://api.example.test/v1/api"
    assert agent.services.store.path == tmp_path / "credentials.json"
    assert agent.services.cache.path == tmp_path / "pending.jsonl"
    assert agent.orchestrator.events is agent.events
    assert agent.orchestrator.state is SessionState.IDLE
    assert agent.orchestrator._scheduler is scheduler
    assert agent.background._orchestrator is agent.orchestrator
