from datetime import timedelta

import pytest

from httpscaler.config import ConfigError, ScalerConfig, parse_config, parse_duration

REQUIRED = {
    "KEDA_HTTP_SCALER_TARGET_ADMIN_NAMESPACE": "keda",
    "KEDA_HTTP_SCALER_TARGET_ADMIN_SERVICE": "admin-svc",
    "KEDA_HTTP_SCALER_TARGET_ADMIN_DEPLOYMENT": "interceptor",
    "KEDA_HTTP_SCALER_TARGET_ADMIN_PORT": "9090",
}


def test_defaults_applied():
    cfg = parse_config(dict(REQUIRED))
    assert cfg.grpc_port == 8080
    assert cfg.target_pending_requests == 100
    assert cfg.config_map_cache_rsync_period == parse_duration("60m")
    assert cfg.deployment_cache_rsync_period == parse_duration("60m")
    assert cfg.queue_tick_duration == parse_duration("500ms")


def test_required_values_read():
    cfg = parse_config(dict(REQUIRED))
    assert cfg.target_namespace == "keda"
    assert cfg.target_service == "admin-svc"
    assert cfg.target_deployment == "interceptor"
    assert cfg.target_port == 9090


def test_overrides():
    env = dict(REQUIRED)
    env["KEDA_HTTP_SCALER_PORT"] = "7000"
    env["KEDA_HTTP_QUEUE_TICK_DURATION"] = "2s"
    env["KEDA_HTTP_SCALER_TARGET_PENDING_REQUESTS"] = "42"
    cfg = parse_config(env)
    assert cfg.grpc_port == 7000
    assert cfg.queue_tick_duration == timedelta(seconds=2)
    assert cfg.target_pending_requests == 42


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_required_key(missing):
    env = dict(REQUIRED)
    del env[missing]
    with pytest.raises(ConfigError, match=missing):
        parse_config(env)


def test_invalid_int():
    env = dict(REQUIRED)
    env["KEDA_HTTP_SCALER_TARGET_ADMIN_PORT"] = "not-a-port"
    with pytest.raises(ConfigError):
        parse_config(env)


def test_empty_int_is_error():
    env = dict(REQUIRED)
    env["KEDA_HTTP_SCALER_PORT"] = ""
    with pytest.raises(ConfigError):
        parse_config(env)


def test_empty_required_string_is_accepted():
    env = dict(REQUIRED)
    env["KEDA_HTTP_SCALER_TARGET_ADMIN_SERVICE"] = ""
    assert parse_config(env).target_service == ""


def test_invalid_duration_env():
    env = dict(REQUIRED)
    env["KEDA_HTTP_QUEUE_TICK_DURATION"] = "soon"
    with pytest.raises(ConfigError):
        parse_config(env)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        parse_config({})


@pytest.mark.parametrize(
    "text,expected",
    [
        ("60m", timedelta(minutes=60)),
        ("500ms", timedelta(milliseconds=500)),
        ("0", timedelta(0)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5s", timedelta(seconds=1.5)),
        ("-2s", timedelta(seconds=-2)),
        ("+3m", timedelta(minutes=3)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


def test_parse_duration_components_add_up():
    assert parse_duration("1h2m3s") == parse_duration("1h") + parse_duration("2m") + parse_duration("3s")


def test_parse_duration_microseconds():
    assert parse_duration("250us") == timedelta(microseconds=250)


@pytest.mark.parametrize("text", ["", "abc", "5", "s", ".s", "1x", "-"])
def test_parse_duration_invalid(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


def test_config_is_frozen():
    cfg = parse_config(dict(REQUIRED))
    with pytest.raises(AttributeError):
        cfg.grpc_port = 1  # type: ignore[misc]
    assert isinstance(cfg, ScalerConfig) and cfg.grpc_port == 8080