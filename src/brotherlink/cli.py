# cli entrypoint
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .alarms import AlarmBuilder, AlarmTranslator
from .config import RunConfig, build_arg_parser, load_config_and_args
from .logging_utils import setup_logging
from .model import CncAlarm
from .transports import Brother, BrotherFtp, BrotherHttp, BrotherTcp, FileTransport

log = logging.getLogger(__name__)


def build_brother(run_config: RunConfig) -> Brother:
    """Create the three transports of one controller from the run configuration."""
    translator = None
    if run_config.alarm_translation_file is not None:
        try:
            translator = AlarmTranslator.from_path(run_config.alarm_translation_file)
        except OSError as e:
            raise SystemExit(f"Cannot read alarm translations {run_config.alarm_translation_file}: {e}") from e
        log.info("Loaded %d alarm translations", len(translator))
    alarm_builder = AlarmBuilder(translator)

    tcp = BrotherTcp(
        run_config.host,
        run_config.tcp_port,
        timeout_s=run_config.tcp_timeout_ms / 1000.0,
        machine_type=run_config.machine_type,
        reset_each_cycle=run_config.tcp_reset_each_cycle,
        alarm_builder=alarm_builder,
        cooldown_s=run_config.backoff_cooldown_s,
    )
    ftp = BrotherFtp(
        run_config.host,
        run_config.ftp_login,
        run_config.ftp_password,
        timeout_s=run_config.ftp_timeout_ms / 1000.0,
        machine_type=run_config.machine_type,
        alarm_builder=alarm_builder,
        cooldown_s=run_config.backoff_cooldown_s,
    )
    http = BrotherHttp(
        run_config.host,
        timeout_s=run_config.http_timeout_ms / 1000.0,
        enabled=run_config.http_enabled,
        cooldown_s=run_config.backoff_cooldown_s,
    )
    return Brother(tcp, ftp, http)


def _file_transport(brother: Brother) -> FileTransport:
    """FTP when its session is up, TCP otherwise."""
    return brother.ftp if brother.ftp.connected else brother.tcp


def _read(label: str, reader: Callable[[], object], out: Callable[[str], None]) -> Optional[object]:
    try:
        value = reader()
    except Exception as e:
        out(f"{label}: ERROR {type(e).__name__}: {e}")
        return None
    out(f"{label}: {value}")
    return value


def _read_alarms(brother: Brother, run_config: RunConfig) -> List[CncAlarm]:
    alarms = _file_transport(brother).get_alarms()
    if run_config.http_enabled and alarms:
        try:
            brother.complete_with_http_alarms(alarms)
        except Exception as e:
            log.warning("Alarm details from the HTTP pages are not available: %s", e)
    return alarms


def run_cycle(brother: Brother, run_config: RunConfig, out: Callable[[str], None] = print) -> bool:
    """
    Run one acquisition cycle and print every requested value.

    Each value is read on its own; a failure is printed and the next value is read.

    Returns:
        True when the cycle could read what it was asked for.
    """
    if not brother.start():
        log.error("No transport could be started for %s", run_config.host or "<no host>")
    try:
        for param in run_config.tcp_params:
            _read(f"tcp {param}", lambda param=param: brother.get_tcp_string(param), out)
        for param in run_config.ftp_params:
            _read(f"ftp {param}", lambda param=param: brother.get_ftp_string(param), out)

        if run_config.read_alarms:
            _read("alarms", lambda: _read_alarms(brother, run_config), out)
        if run_config.read_maintenance:
            _read("maintenance", lambda: _file_transport(brother).get_maintenance_notice(), out)
        if run_config.tool_life_file:
            transport = _file_transport(brother)
            file_name = run_config.tool_life_file + transport.FILE_SUFFIX
            _read("tool life", lambda: transport.get_tool_life_data(file_name).tools, out)
        if run_config.macros:
            _read("macros", lambda: _file_transport(brother).get_macro_set_metric(run_config.macros), out)
    finally:
        brother.finish()

    return not brother.acquisition_error


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point: one acquisition cycle against the configured controller."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    run_config = load_config_and_args(args)
    if not run_config.host:
        raise SystemExit("No controller host: set machine.host or --host")

    brother = build_brother(run_config)
    try:
        ok = run_cycle(brother, run_config)
    finally:
        brother.close()
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
