import os
import logging
from typing import List, Optional

from .errors import ConfigFileMissingError, InvalidServiceError, ServiceAlreadyExistsError
from .models import ServiceConfiguration, ServiceState
from .sddl import SddlEditor
from .serializer import write_service_xml
from .utils.process import CommandRunner
from .windows import WindowsHost


class WinSWManager:
    """
    Class for managing services wrapped by the WinSW executable.

    Every operation reads the current registration state from the service
    control manager first and acts on it; nothing is cached between calls.
    Concurrent operations on the same service id are not coordinated.
    """
    def __init__(self, winsw_path: str, runner: Optional[CommandRunner] = None):
        self.winsw_path = winsw_path
        self.runner = runner or CommandRunner()
        self.host = WindowsHost(self.runner)
        self.sddl = SddlEditor(self.runner, self.host)
        self.logger = logging.getLogger("winsw_manager.service_manager")

    async def run_winsw_command(self, command: str, config: ServiceConfiguration,
                                extra_args: Optional[List[str]] = None,
                                secrets: Optional[List[str]] = None) -> str:
        """
        Run a WinSW subcommand against the service configuration file.

        Args:
            command: install, uninstall, start or stop
            config: Service configuration
            extra_args: Arguments appended after the configuration file path
            secrets: Arguments hidden from logs and errors

        Returns:
            str: Command output

        Raises:
            ExecutionError: If WinSW exits non-zero or writes to stderr
        """
        cmd = [self.winsw_path, command, config.config_file_path] + (extra_args or [])
        return await self.runner.check(cmd, secrets or [])

    def _account_args(self, config: ServiceConfiguration):
        account = config.account
        if account is None or not account.username:
            return [], []
        args = ['--user', account.qualified_name]
        if account.password:
            args += ['--pass', account.password]
            return args, [account.password]
        return args, []

    async def _require_service(self, config: ServiceConfiguration):
        if not await self.host.service_exists(config.id):
            raise InvalidServiceError(config.id)
        if not config.config_exists():
            raise ConfigFileMissingError(config.config_file_path)

    async def status(self, service_id: str) -> ServiceState:
        """Get the state of a service."""
        return await self.host.query_service_state(service_id)

    async def install(self, config: ServiceConfiguration):
        """
        Install a service.

        A registered service whose configuration file went missing gets the
        file rewritten. A registered service with its file in place is never
        overwritten.

        Raises:
            ServiceAlreadyExistsError: If the service and its file both exist
        """
        if not await self.host.service_exists(config.id):
            write_service_xml(config)
            args, secrets = self._account_args(config)
            await self.run_winsw_command('install', config, args, secrets)
            self.logger.info(f"Service {config.id} installed")
        elif not config.config_exists():
            self.logger.warning(f"Service {config.id} is registered without its configuration file, rewriting it")
            write_service_xml(config)
        else:
            raise ServiceAlreadyExistsError(config.id)

        await self.grant_control_access(config)

    async def uninstall(self, config: ServiceConfiguration):
        """
        Uninstall a service and remove its configuration file.

        Raises:
            InvalidServiceError: If the service is not registered
            ConfigFileMissingError: If the configuration file is absent
        """
        await self._require_service(config)
        await self.run_winsw_command('uninstall', config)
        os.remove(config.config_file_path)
        self.logger.info(f"Service {config.id} uninstalled")

    async def start(self, config: ServiceConfiguration):
        """Start a service."""
        await self._require_service(config)
        await self.run_winsw_command('start', config)
        self.logger.info(f"Service {config.id} started")

    async def stop(self, config: ServiceConfiguration):
        """Stop a service."""
        await self._require_service(config)
        await self.run_winsw_command('stop', config)
        self.logger.info(f"Service {config.id} stopped")

    async def reinstall(self, config: ServiceConfiguration):
        """Uninstall then install. A failing step is not rolled back."""
        await self.uninstall(config)
        await self.install(config)

    async def restart(self, config: ServiceConfiguration):
        """Stop then start. A failing step is not rolled back."""
        await self.stop(config)
        await self.start(config)

    async def grant_control_access(self, config: ServiceConfiguration) -> bool:
        """
        Let the configured account control the service.

        Returns:
            bool: True if the service DACL was changed
        """
        account = config.account
        if account is None or not account.requires_grant:
            self.logger.info(f"No account to grant access to {config.id}")
            return False
        return await self.sddl.grant_control_access(config.id, account.qualified_name)
