import logging

from clockcore.fetchers import HeaderTimeSource, JsonTimeSource, ProxyTimeSource
from ticketclock.config import DEFAULT_PLATFORM_OFFSETS, Settings, parse_platform_offsets


def test_defaults_without_environment():
    settings = Settings.from_env({})

    assert settings.proxy_url == "http://localhost:3000"
    assert settings.sync_interval_s == 300.0
    assert settings.platform_interval_s == 60.0
    assert settings.stale_after_ms == 120_000
    assert settings.tick_interval_s == 0.01
    assert settings.platform_offsets == DEFAULT_PLATFORM_OFFSETS
    assert settings.detect_local_headers is False


def test_environment_overrides():
    settings = Settings.from_env(
        {
            "TICKETCLOCK_PROXY_URL": "http://proxy.local:8080/",
            "TICKETCLOCK_PORT": "8080",
            "TICKETCLOCK_STALE_AFTER_MS": "30000",
            "TICKETCLOCK_PLATFORM_OFFSETS": "melon=0.5; naver=-0.25",
            "TICKETCLOCK_DETECT_LOCAL_HEADERS": "yes",
        }
    )

    assert settings.proxy_url == "http://proxy.local:8080"
    assert settings.port == 8080
    assert settings.stale_after_ms == 30_000
    assert settings.platform_offsets["melon"] == 0.5
    assert settings.platform_offsets["naver"] == -0.25
    assert settings.platform_offsets["yes24"] == 0.1
    assert settings.detect_local_headers is True


def test_invalid_values_fall_back_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        settings = Settings.from_env(
            {"TICKETCLOCK_SYNC_INTERVAL_S": "often", "TICKETCLOCK_PORT": "http"}
        )

    assert settings.sync_interval_s == 300.0
    assert settings.port == 3000
    assert "Invalid sync interval value" in caplog.text


def test_parse_platform_offsets_skips_bad_entries(caplog):
    with caplog.at_level(logging.WARNING):
        offsets = parse_platform_offsets("melon=0.2,broken,yes24=fast,Interpark=-0.1")

    assert offsets == {"melon": 0.2, "interpark": -0.1}
    assert "broken" in caplog.text
    assert "yes24" in caplog.text


def test_source_lists_follow_priority_and_proxy():
    settings = Settings.from_env({"TICKETCLOCK_PROXY_URL": "http://proxy.local"})

    primary = settings.primary_sources()
    assert [type(source) for source in primary] == [JsonTimeSource, JsonTimeSource, HeaderTimeSource]
    assert primary[-1].url == "http://proxy.local/api/health"

    platforms = settings.platform_sources()
    assert all(isinstance(source, ProxyTimeSource) for source in platforms)
    assert [source.source_id for source in platforms] == ["melon", "interpark", "yes24"]


def test_unknown_display_zone_falls_back_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        settings = Settings.from_env({"TICKETCLOCK_DISPLAY_TZ": "Mars/Olympus"})

    assert settings.display_tz == "Asia/Seoul"
    assert "Invalid display zone" in caplog.text
    assert Settings.from_env({"TICKETCLOCK_DISPLAY_TZ": "UTC"}).display_tz == "UTC"
