from pathlib import Path

import pytest

from brotherlink.config import build_arg_parser, load_config_and_args


def make_args(*argv):
    return build_arg_parser().parse_args(list(argv))


def test_load_config_defaults_without_file(tmp_path, monkeypatch):
    # Ensure we don't accidentally pick up a real brotherlink.toml.
    monkeypatch.chdir(tmp_path)
    rc = load_config_and_args(make_args())

    assert rc.host == ""
    assert rc.machine_type == ""
    assert rc.tcp_port == 10000
    assert rc.tcp_timeout_ms == 200
    assert rc.tcp_reset_each_cycle is False
    assert rc.ftp_login == ""
    assert rc.ftp_timeout_ms == 200
    assert rc.http_enabled is True
    assert rc.http_timeout_ms == 200
    assert rc.backoff_cooldown_s == 60.0
    assert rc.alarm_translation_file is None
    assert rc.tcp_params == [] and rc.ftp_params == []
    assert not rc.read_alarms and not rc.read_maintenance


def test_load_config_uses_default_config_file(tmp_path, monkeypatch):
    (tmp_path / "brotherlink.toml").write_text(
        """
        [machine]
        host = "192.168.0.20"
        type = "C"
        [tcp]
        reset_each_cycle = true
        [alarms]
        translation_file = "alarms.tsv"
        """
    )
    monkeypatch.chdir(tmp_path)

    rc = load_config_and_args(make_args())
    assert rc.host == "192.168.0.20"
    assert rc.machine_type == "C"
    assert rc.tcp_reset_each_cycle is True
    assert rc.alarm_translation_file == Path("alarms.tsv")


def test_load_config_missing_explicit_path_raises(tmp_path):
    with pytest.raises(SystemExit):
        load_config_and_args(make_args("--config", str(tmp_path / "nope.toml")))


def test_load_config_invalid_toml_raises(tmp_path):
    cfg_path = tmp_path / "bad.toml"
    cfg_path.write_text("[machine\nhost=")
    with pytest.raises(SystemExit):
        load_config_and_args(make_args("--config", str(cfg_path)))


def test_cli_overrides_win_over_file(tmp_path):
    cfg_path = tmp_path / "cell.toml"
    cfg_path.write_text(
        """
        [machine]
        host = "10.0.0.1"
        type = "B"
        [tcp]
        port = 10010
        timeout_ms = 300
        [ftp]
        login = "file-user"
        password = "file-pw"
        timeout_ms = 500
        [http]
        enabled = true
        [backoff]
        cooldown_s = 5
        [alarms]
        translation_file = "tables/alarms.tsv"
        """
    )
    rc = load_config_and_args(
        make_args(
            "--config", str(cfg_path),
            "--host", "10.0.0.2",
            "--machine-type", "C",
            "--tcp-timeout-ms", "250",
            "--ftp-login", "cli-user",
            "--no-http",
            "--tcp", "ABC|FUNC|MSG",
            "--tcp", "DEF|GHI|JKL~0-2",
            "--ftp", "MEM.NC|A01|0",
            "--alarms",
            "--tool-life", "TOLNM1",
            "--macros", ",500",
        )
    )

    assert rc.host == "10.0.0.2"
    assert rc.machine_type == "C"
    assert rc.tcp_port == 10010
    assert rc.tcp_timeout_ms == 250
    assert rc.ftp_login == "cli-user"
    assert rc.ftp_password == "file-pw"
    assert rc.ftp_timeout_ms == 500
    assert rc.http_enabled is False
    assert rc.backoff_cooldown_s == 5.0
    # Relative translation tables are resolved next to the config file.
    assert rc.alarm_translation_file == tmp_path / "tables" / "alarms.tsv"
    assert rc.tcp_params == ["ABC|FUNC|MSG", "DEF|GHI|JKL~0-2"]
    assert rc.ftp_params == ["MEM.NC|A01|0"]
    assert rc.read_alarms is True
    assert rc.tool_life_file == "TOLNM1"
    assert rc.macros == ",500"


def test_invalid_settings_raise(tmp_path):
    cfg_path = tmp_path / "bad.toml"
    cfg_path.write_text('[machine]\ntype = "Z"\n')
    with pytest.raises(SystemExit):
        load_config_and_args(make_args("--config", str(cfg_path)))

    cfg_path.write_text("[tcp]\ntimeout_ms = 0\n")
    with pytest.raises(SystemExit):
        load_config_and_args(make_args("--config", str(cfg_path)))
