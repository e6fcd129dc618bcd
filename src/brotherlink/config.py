# config.py
from __future__ import annotations

import argparse
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "brotherlink.toml"
MACHINE_TYPES = ("B", "C")


@dataclass
class RunConfig:
    host: str
    machine_type: str
    tcp_port: int
    tcp_timeout_ms: int
    tcp_reset_each_cycle: bool
    ftp_login: str
    ftp_password: str
    ftp_timeout_ms: int
    http_enabled: bool
    http_timeout_ms: int
    backoff_cooldown_s: float
    alarm_translation_file: Optional[Path]
    tcp_params: List[str] = field(default_factory=list)
    ftp_params: List[str] = field(default_factory=list)
    read_alarms: bool = False
    read_maintenance: bool = False
    tool_life_file: Optional[str] = None
    macros: Optional[str] = None


def build_arg_parser() -> argparse.ArgumentParser:
    """
    Build the CLI argument parser: connection overrides and the values to read.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(
        description="Run one acquisition cycle against a Brother CNC controller",
    )
    p.add_argument(
        "--config",
        type=Path,
        help=f"TOML config file (defaults to {DEFAULT_CONFIG_FILE} if present)",
    )
    p.add_argument("--host", help="Controller hostname or IP")
    p.add_argument("--machine-type", choices=MACHINE_TYPES, help="B00 or C00 generation")
    p.add_argument("--tcp-port", type=int, help="TCP port (default 10000)")
    p.add_argument("--tcp-timeout-ms", type=int, help="TCP answer timeout (default 200)")
    p.add_argument("--ftp-login", help="FTP login; FTP is not used without it")
    p.add_argument("--ftp-password", help="FTP password")
    p.add_argument("--no-http", dest="http_enabled", action="store_false", help="Do not use the HTTP pages")
    p.set_defaults(http_enabled=None)

    # Values to read
    p.add_argument(
        "--tcp",
        dest="tcp_params",
        action="append",
        default=[],
        metavar="PARAM",
        help="TCP query cmd|func|msg[|data][~pos-len] (repeatable)",
    )
    p.add_argument(
        "--ftp",
        dest="ftp_params",
        action="append",
        default=[],
        metavar="PARAM",
        help="FTP value file|symbol|position (repeatable)",
    )
    p.add_argument("--alarms", action="store_true", help="Read the current alarms")
    p.add_argument("--maintenance", action="store_true", help="Read the maintenance notices")
    p.add_argument("--tool-life", metavar="FILE", help="Read the tool life of a tool file, e.g. TOLNM1")
    p.add_argument("--macros", metavar="LIST", help="Read metric macro variables, e.g. ,500,673")

    p.add_argument("--log-level", default="INFO")
    return p


def _load_toml(path: Path) -> dict:
    """
    Raises:
        FileNotFoundError: If the file is missing.
        tomllib.TOMLDecodeError: On parse errors.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("rb") as f:
        return tomllib.load(f)


def _dict_get_nested(data: dict, key: str, default=None):
    """
    Fetch a dotted-path value (``"tcp.port"``) from a nested dict.
    """
    *sections, name = key.split(".")
    current_level = data
    for section in sections:
        current_level = current_level.get(section, {})
        if not isinstance(current_level, dict):
            return default
    return current_level.get(name, default)


def _override(value, cli_value):
    return value if cli_value is None else cli_value


def load_config_and_args(args: argparse.Namespace) -> RunConfig:
    """
    Merge CLI args with the TOML config into a RunConfig.

    Args:
        args: Parsed argparse namespace.

    Returns:
        RunConfig with the connection settings and the values to read.

    Raises:
        SystemExit: On an explicit config file that is missing or invalid, or on
            invalid settings.
    """
    cfg_data: dict = {}
    cfg_path: Optional[Path] = args.config
    used_default = False

    if cfg_path is None:
        default_path = Path(DEFAULT_CONFIG_FILE)
        if default_path.exists():
            cfg_path = default_path
            used_default = True

    if cfg_path is not None:
        try:
            cfg_data = _load_toml(cfg_path)
        except FileNotFoundError:
            if not used_default:
                raise SystemExit(f"Config file not found: {cfg_path}")
        except Exception as e:
            raise SystemExit(f"Failed to load config file {cfg_path}: {e}") from e

    translation_file = _dict_get_nested(cfg_data, "alarms.translation_file", None)
    if translation_file is not None:
        translation_file = Path(translation_file)
        if cfg_path is not None and not translation_file.is_absolute():
            translation_file = cfg_path.parent / translation_file

    run_config = RunConfig(
        host=_override(_dict_get_nested(cfg_data, "machine.host", ""), args.host),
        machine_type=_override(_dict_get_nested(cfg_data, "machine.type", ""), args.machine_type),
        tcp_port=_override(_dict_get_nested(cfg_data, "tcp.port", 10000), args.tcp_port),
        tcp_timeout_ms=_override(_dict_get_nested(cfg_data, "tcp.timeout_ms", 200), args.tcp_timeout_ms),
        tcp_reset_each_cycle=bool(_dict_get_nested(cfg_data, "tcp.reset_each_cycle", False)),
        ftp_login=_override(_dict_get_nested(cfg_data, "ftp.login", ""), args.ftp_login),
        ftp_password=_override(_dict_get_nested(cfg_data, "ftp.password", ""), args.ftp_password),
        ftp_timeout_ms=_dict_get_nested(cfg_data, "ftp.timeout_ms", 200),
        http_enabled=bool(_override(_dict_get_nested(cfg_data, "http.enabled", True), args.http_enabled)),
        http_timeout_ms=_dict_get_nested(cfg_data, "http.timeout_ms", 200),
        backoff_cooldown_s=float(_dict_get_nested(cfg_data, "backoff.cooldown_s", 60.0)),
        alarm_translation_file=translation_file,
        tcp_params=list(getattr(args, "tcp_params", None) or []),
        ftp_params=list(getattr(args, "ftp_params", None) or []),
        read_alarms=bool(getattr(args, "alarms", False)),
        read_maintenance=bool(getattr(args, "maintenance", False)),
        tool_life_file=getattr(args, "tool_life", None),
        macros=getattr(args, "macros", None),
    )

    if run_config.machine_type and run_config.machine_type not in MACHINE_TYPES:
        raise SystemExit(
            f"Invalid machine type '{run_config.machine_type}'; expected one of {list(MACHINE_TYPES)}"
        )
    for name in ("tcp_timeout_ms", "ftp_timeout_ms", "http_timeout_ms"):
        if getattr(run_config, name) <= 0:
            raise SystemExit(f"{name} must be positive")

    log.debug("RunConfig: %s", {k: v for k, v in asdict(run_config).items() if k != "ftp_password"})
    return run_config
