#!/usr/bin/env python3
"""
winsw-manager - install and control Windows services wrapped by WinSW.

A service is described by a JSON file whose keys match ServiceConfiguration
(id, name, executable, config_directory, description, arguments, log,
account). The WinSW configuration file is generated from it and WinSW is
invoked to install, uninstall, start or stop the service.
"""

import os
import sys
import json
import asyncio
import argparse
import logging
import requests

from winsw_manager.errors import ConfigParseError, WinSWError
from winsw_manager.models import ServiceConfiguration
from winsw_manager.serializer import build_service_xml
from winsw_manager.service_manager import WinSWManager
from winsw_manager.utils.admin import is_admin
from winsw_manager.utils.config import ConfigManager
from winsw_manager.utils.logging_setup import setup_logging

COMMANDS = ['install', 'uninstall', 'start', 'stop', 'restart', 'reinstall', 'status', 'grant', 'render', 'recent']


def download_winsw(url, target_dir):
    """
    Download the WinSW executable unless it is already present.

    Args:
        url: URL to download WinSW from
        target_dir: Directory to store the executable

    Returns:
        Path to the WinSW executable
    """
    os.makedirs(target_dir, exist_ok=True)
    winsw_path = os.path.join(target_dir, 'winsw.exe')

    if os.path.exists(winsw_path):
        return winsw_path

    response = requests.get(url, timeout=60)
    response.raise_for_status()

    with open(winsw_path, 'wb') as target:
        target.write(response.content)

    return winsw_path


def load_service_definition(path, config_directory):
    """
    Read a JSON service definition and validate it.

    Args:
        path: Path to the JSON file
        config_directory: Directory used when the definition names none

    Returns:
        ServiceConfiguration: The validated configuration
    """
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigParseError(path, str(e)) from e

    if isinstance(data, dict):
        data.setdefault('config_directory', config_directory)
    return ServiceConfiguration.from_dict(data)


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description='winsw-manager - manage Windows services wrapped by WinSW')

    parser.add_argument('command', choices=COMMANDS, help='Operation to perform')
    parser.add_argument('service_file', nargs='?', help='JSON service definition')
    parser.add_argument('--winsw-path', help='Path to WinSW executable')
    parser.add_argument('--no-admin-check', action='store_true', help='Skip admin rights check')
    parser.add_argument('--config-dir', help='Preferences directory')
    parser.add_argument('--log-dir', help='Log directory')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Logging level')

    args = parser.parse_args(argv)
    if args.command != 'recent' and not args.service_file:
        parser.error(f"{args.command} requires a service definition file")
    return args


async def run_command(manager: WinSWManager, command: str, config: ServiceConfiguration):
    """Dispatch a command-line operation to the manager."""
    if command == 'status':
        state = await manager.status(config.id)
        print(f"{config.id}: {state.value}")
    elif command == 'grant':
        await manager.grant_control_access(config)
    else:
        await getattr(manager, command)(config)


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        config_manager = ConfigManager(args.config_dir)
    except ConfigParseError as e:
        print(str(e), file=sys.stderr)
        return 1

    log_level = getattr(logging, args.log_level or config_manager.get('logging', 'level', 'INFO'))
    logger = setup_logging(args.log_dir or config_manager.get('logging', 'directory') or None, log_level)

    if args.command == 'recent':
        for service_id in config_manager.get_recent_services():
            print(service_id)
        return 0

    try:
        config = load_service_definition(args.service_file, config_manager.get_config_directory())

        if args.command == 'render':
            print(build_service_xml(config))
            return 0

        if not args.no_admin_check and not is_admin():
            logger.warning("Running without administrative privileges. Service operations may fail.")

        winsw_path = args.winsw_path or config_manager.get_wrapper_path()
        if not winsw_path:
            winsw_path = download_winsw(config_manager.get('wrapper', 'download_url'), config_manager.config_dir)
            logger.info(f"Using downloaded WinSW at {winsw_path}")

        if not os.path.exists(winsw_path):
            logger.error(f"WinSW executable not found at {winsw_path}")
            return 1

        # Saved with the recent services once the operation succeeds
        config_manager.set('wrapper', 'path', winsw_path)

        manager = WinSWManager(winsw_path)
        asyncio.run(run_command(manager, args.command, config))
        config_manager.add_recent_service(config.id)
    except WinSWError as e:
        logger.error(str(e))
        return 1
    except requests.RequestException as e:
        logger.error(f"Failed to download WinSW: {str(e)}")
        return 1
    except OSError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
