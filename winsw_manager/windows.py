import logging
from typing import Optional

from .models import ServiceState
from .utils.process import CommandRunner

logger = logging.getLogger("winsw_manager.windows")


class WindowsHost:
    """
    Existence and state queries against the local service control manager
    and account database.

    Answers are read fresh on every call. They can be stale by the time the
    caller acts on them; the service database itself is the only lock.
    """
    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    async def query_service_state(self, service_id: str) -> ServiceState:
        """
        Get the state of a service from `sc query`.

        Returns:
            ServiceState: UNREGISTERED when sc does not know the service,
            RUNNING when it runs, STOPPED for every other registered state
        """
        if not service_id:
            return ServiceState.UNREGISTERED

        result = await self.runner.run(['sc', 'query', service_id])
        if result.returncode != 0:
            return ServiceState.UNREGISTERED

        for line in result.stdout.splitlines():
            if 'STATE' in line:
                parts = line.strip().split(':', 1)
                if len(parts) > 1:
                    state_parts = parts[1].strip().split()
                    if 'RUNNING' in state_parts:
                        return ServiceState.RUNNING
        return ServiceState.STOPPED

    async def service_exists(self, service_id: str) -> bool:
        state = await self.query_service_state(service_id)
        return state is not ServiceState.UNREGISTERED

    async def user_exists(self, username: str) -> bool:
        """Check a local account with `net user`."""
        if not username:
            return False
        result = await self.runner.run(['net', 'user', username])
        exists = result.returncode == 0
        if not exists:
            logger.debug(f"Account {username} not found")
        return exists
