"""Tests for DiscoveryService wiring and settings."""

import pytest

import scanfinder.discovery.service as service_module
from conftest import FakeTransport, make_config
from scanfinder.config import DiscoveryConfig, Settings
from scanfinder.discovery.models import BrowseEvent, BrowseEventKind, MdnsService, ResolveEvent, ResolveEventKind
from scanfinder.discovery.service import DiscoveryService, shutdown_discovery


class TestDiscoveryConfig:

    def test_defaults(self):
        config = DiscoveryConfig()
        assert config.restart_delay_seconds == 1.0
        assert config.ready_timeout_seconds == 5.0
        assert config.ip_version == "all"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SCANFINDER_DISCOVERY_ENABLED", "false")
        monkeypatch.setenv("SCANFINDER_DISCOVERY_IP_VERSION", "v4")
        config = DiscoveryConfig()
        assert config.enabled is False
        assert config.ip_version == "v4"

    def test_rejects_non_positive_delay(self):
        with pytest.raises(ValueError):
            DiscoveryConfig(restart_delay_seconds=0)

    def test_rejects_unknown_ip_version(self):
        with pytest.raises(ValueError):
            DiscoveryConfig(ip_version="v5")

    def test_nested_in_settings(self):
        assert isinstance(Settings().discovery, DiscoveryConfig)


class TestDiscoveryService:

    @pytest.mark.asyncio
    async def test_devices_after_initial_scan(self):
        transport = FakeTransport()
        service = DiscoveryService(config=make_config(), transport=transport)
        await service.start()
        try:
            engine = service.engine
            engine.post(BrowseEvent(
                service=MdnsService.USCAN_TCP,
                kind=BrowseEventKind.NEW,
                name="Scanner",
                ifindex=2,
                families=(),
            ))
            await engine.drain()
            for op in transport.ops_for("Scanner"):
                engine.post(ResolveEvent(op=op, kind=ResolveEventKind.FAILURE))
            for svc in MdnsService:
                engine.post(BrowseEvent(service=svc, kind=BrowseEventKind.ALL_FOR_NOW))

            assert await service.wait_ready() is True
            # Both resolves failed: finalized but nothing to publish
            assert service.devices() == []
        finally:
            await service.stop()

        assert not service.is_running

    @pytest.mark.asyncio
    async def test_wait_ready_times_out(self):
        service = DiscoveryService(config=make_config(), transport=FakeTransport())
        await service.start()
        try:
            assert await service.wait_ready(timeout=0.01) is False
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_start_and_stop_idempotent(self):
        transport = FakeTransport()
        service = DiscoveryService(config=make_config(), transport=transport)
        await service.start()
        await service.start()
        assert transport.client_starts == 1

        await service.stop()
        await service.stop()
        assert transport.client_stops == 1

    @pytest.mark.asyncio
    async def test_disabled_is_ready_immediately(self):
        service = DiscoveryService(config=make_config(enabled=False), transport=FakeTransport())
        await service.start()
        try:
            assert await service.wait_ready(timeout=0.01) is True
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_global_service(self, monkeypatch):
        monkeypatch.setattr(service_module, "_discovery_service", None)
        first = service_module.get_discovery_service()
        assert service_module.get_discovery_service() is first

        await shutdown_discovery()
        assert service_module._discovery_service is None
