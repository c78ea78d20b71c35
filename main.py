"""
Main entry point for Sync Alarm

    sync-alarm server                      - uruchom serwer (HTTP + WebSocket)
    sync-alarm device --role main          - uruchom urządzenie bez UI
"""
import argparse
import sys
import time

from loguru import logger

from alarm_client.config import config, ensure_directories


def setup_logging() -> None:
    """Configure application logging"""
    # Remove default logger
    logger.remove()

    # Add console logger
    logger.add(
        sys.stderr,
        format=config.LOG_FORMAT,
        level=config.LOG_LEVEL,
        colorize=True,
    )

    # Add file logger
    log_file = config.LOGS_DIR / "sync_alarm.log"
    logger.add(
        log_file,
        format=config.LOG_FORMAT,
        level=config.LOG_LEVEL,
        rotation=config.LOG_ROTATION,
        retention=config.LOG_RETENTION,
        encoding="utf-8",
    )

    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sync-alarm", description=config.APP_NAME)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("server", help="Run the alarm server")

    device = commands.add_parser("device", help="Run a headless device")
    device.add_argument("--role", choices=["main", "receiver"], default=None)
    device.add_argument("--url", default=config.API_BASE_URL, help="Server base URL")

    return parser


def run_device(role, url) -> int:
    """Urządzenie bez UI: loguje powiadomienia do zamknięcia (Ctrl+C)"""
    from alarm_client.alarms_logic import AlarmManager

    manager = AlarmManager(config.DATA_DIR, role=role, api_base_url=url)
    if not manager.role:
        logger.error("No device role saved - pass --role main or --role receiver")
        manager.cleanup()
        return 2

    manager.start()
    try:
        while manager.role:
            time.sleep(config.TICK_INTERVAL)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        manager.cleanup()
    return 0


def main(argv=None) -> int:
    """Main application entry point"""
    args = build_parser().parse_args(argv)

    try:
        # Setup
        ensure_directories()
        setup_logging()

        if args.command == "server":
            from alarm_api.main import run
            run()
            return 0

        return run_device(args.role, args.url)

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
