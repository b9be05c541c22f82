#!/usr/bin/env python3
"""
Точка входа: GET или WebSocket handshake к серверу.

Запуск:
    python -m probe.main localhost 8080 /index.html
    python -m probe.main localhost 8080 /ws --ws -i
    python -m probe.main example.com 80 / --config probe.yaml
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from probe.client import Exchange
from probe.config import ClientConfig
from probe.errors import ProbeError
from probe.logger import log_exchange, setup_logger
from probe.utils.http import StatusLine


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="probe",
        description="Minimal HTTP/1.1 GET and WebSocket handshake client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("hostname", help="Host to connect to")
    parser.add_argument("port", help="Port (number or service name)")
    parser.add_argument("path", help="Request path, e.g. /index.html")
    parser.add_argument(
        "--ws",
        action="store_true",
        help="Send a WebSocket upgrade request instead of a plain GET",
    )
    parser.add_argument(
        "-i", "--include",
        action="store_true",
        help="Print the status line and headers before the body",
    )
    parser.add_argument(
        "--until-eof",
        action="store_true",
        help="Ignore Content-Length and read the body until the server closes",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Logging level (overrides the config file)",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ClientConfig:
    """Загружает конфигурацию из файла или использует дефолтную."""
    if args.config and Path(args.config).exists():
        config = ClientConfig.from_yaml(args.config)
    else:
        config = ClientConfig.default()
    if args.log_level:
        config.log_level = args.log_level
    return config


def print_header(name: str, value: str) -> None:
    print(f"header: {name}={value}", flush=True)


def print_status(status: StatusLine) -> None:
    print(f"http-version: {status.version}")
    print(f"status-code: {int(status.code)}")
    print(f"reason-phrase: {status.reason}", flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = load_config(args)

    # Настройка логирования
    setup_logger(config.log_level)
    logger = logging.getLogger("probe")
    logger.debug(f"Config loaded: {config}")

    if args.config and not Path(args.config).exists():
        logger.warning(f"Config file {args.config} not found, using defaults")

    target = f"{args.hostname}:{args.port}{args.path}"
    # статус и заголовки печатаем по мере разбора, до тела
    exchange = Exchange(
        config,
        on_header=print_header if args.include else None,
        on_status=print_status if args.include else None,
    )

    try:
        with log_exchange(logger, "UPGRADE" if args.ws else "GET", target) as log:
            if args.ws:
                result = exchange.upgrade(args.hostname, args.port, args.path)
            else:
                result = exchange.get(args.hostname, args.port, args.path, args.until_eof)
            log.status = int(result.status.code)
            log.bytes_received = result.body_bytes
    except ProbeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        # печать заголовков в закрытый stdout (| head)
        print(f"error: failed writing output: {e}", file=sys.stderr)
        return 1

    if args.ws and not result.upgraded:
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
