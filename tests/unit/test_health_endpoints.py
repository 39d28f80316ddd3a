"""Unit tests for dependency health tracking."""
from consent_banner.api.health_endpoints import (
    ASSET_CACHE_DEPENDENCY,
    DependencyState,
    DependencyStatus,
    HealthRegistry,
    create_default_registry,
)


NOW = 1700000000.0


class TestDependencyState:

    def test_defaults(self):
        d = DependencyState(name='svc')
        assert d.status == DependencyStatus.UNKNOWN
        assert d.critical is True

    def test_mark_healthy(self):
        d = DependencyState(name='svc')
        d.mark_healthy('ok', now=NOW)
        assert d.status == DependencyStatus.HEALTHY
        assert d.message == 'ok'
        assert d.last_check_ts == NOW

    def test_mark_degraded(self):
        d = DependencyState(name='svc')
        d.mark_degraded('refresh failed', now=NOW)
        assert d.status == DependencyStatus.DEGRADED

    def test_mark_unhealthy(self):
        d = DependencyState(name='svc')
        d.mark_unhealthy('down', now=NOW)
        assert d.status == DependencyStatus.UNHEALTHY


class TestHealthRegistry:

    def test_register_and_get(self):
        reg = HealthRegistry()
        dep = reg.register('svc')
        assert reg.get('svc') is dep

    def test_get_unknown(self):
        reg = HealthRegistry()
        assert reg.get('nope') is None

    def test_all_deps(self):
        reg = HealthRegistry()
        reg.register('a')
        reg.register('b')
        assert len(reg.all_deps) == 2

    def test_initial_status(self):
        reg = HealthRegistry()
        dep = reg.register('svc', initial_status=DependencyStatus.HEALTHY)
        assert dep.status == DependencyStatus.HEALTHY


class TestReadiness:

    def test_ready_when_all_healthy(self):
        reg = HealthRegistry()
        reg.register('svc').mark_healthy('ok')
        assert reg.is_ready() is True
        assert reg.overall_status() == DependencyStatus.HEALTHY

    def test_not_ready_when_critical_unhealthy(self):
        reg = HealthRegistry()
        reg.register('svc', critical=True).mark_unhealthy('down')
        assert reg.is_ready() is False
        assert reg.overall_status() == DependencyStatus.UNHEALTHY

    def test_not_ready_when_unknown(self):
        reg = HealthRegistry()
        reg.register('svc', critical=True)
        assert reg.is_ready() is False

    def test_degraded_critical_is_still_ready(self):
        reg = HealthRegistry()
        reg.register('svc', critical=True).mark_degraded('refresh failed')
        assert reg.is_ready() is True
        assert reg.overall_status() == DependencyStatus.DEGRADED

    def test_non_critical_failure_degrades(self):
        reg = HealthRegistry()
        reg.register('crit', critical=True).mark_healthy('ok')
        reg.register('optional', critical=False).mark_unhealthy('down')
        assert reg.is_ready() is True
        assert reg.overall_status() == DependencyStatus.DEGRADED

    def test_empty_registry_is_ready(self):
        reg = HealthRegistry()
        assert reg.is_ready() is True


class TestHealthResponse:

    def test_healthy_with_version(self):
        reg = HealthRegistry()
        reg.register('svc').mark_healthy('ok')
        status, body = reg.health_response(version=1700000000000, now=NOW)
        assert status == 200
        assert body == {
            'status': 'healthy',
            'timestamp': '2023-11-14T22:13:20+00:00',
            'version': 1700000000000,
        }

    def test_version_omitted_when_unknown(self):
        reg = HealthRegistry()
        reg.register('svc').mark_healthy('ok')
        _, body = reg.health_response(now=NOW)
        assert 'version' not in body

    def test_degraded_is_200(self):
        reg = HealthRegistry()
        reg.register('svc').mark_degraded('refresh failed')
        status, body = reg.health_response(now=NOW)
        assert status == 200
        assert body['status'] == 'degraded'

    def test_unhealthy_is_503(self):
        reg = HealthRegistry()
        reg.register('svc').mark_unhealthy('down')
        status, body = reg.health_response(now=NOW)
        assert status == 503
        assert body['status'] == 'unhealthy'

    def test_unknown_is_503(self):
        reg = HealthRegistry()
        reg.register('svc')
        status, body = reg.health_response(now=NOW)
        assert status == 503
        assert body['status'] == 'unhealthy'


class TestCreateDefaultRegistry:

    def test_tracks_asset_cache(self):
        reg = create_default_registry()
        dep = reg.get(ASSET_CACHE_DEPENDENCY)
        assert dep is not None
        assert dep.critical is True

    def test_not_ready_initially(self):
        reg = create_default_registry()
        assert reg.is_ready() is False
