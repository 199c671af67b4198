"""
Read-modify-write of a service's security descriptor (SDDL).

Used to let a non-administrative account control a service it runs as.
"""
import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import MalformedDescriptorError, UnknownAccountError, UnknownServiceError
from .utils.process import CommandRunner
from .windows import WindowsHost

logger = logging.getLogger("winsw_manager.sddl")

# DACL clause, then an optional SACL clause running to the end
SDDL_PATTERN = re.compile(r'(D:.+?)(S:.+)?$')
ACE_PATTERN = re.compile(r'\(([^()]*)\)')
SID_PATTERN = re.compile(r'S-1-\d+(?:-\d+)+')

# Query status, pause/continue, start, stop, user-defined control
CONTROL_RIGHTS = 'LCDTRPWPCR'

SID_LOOKUP_SCRIPT = (
    "(New-Object System.Security.Principal.NTAccount('{account}'))"
    ".Translate([System.Security.Principal.SecurityIdentifier]).Value"
)


class SecurityDescriptor(BaseModel):
    """
    A service security descriptor split into its clauses.

    Attributes:
        head: Owner/group clauses preceding the DACL, kept verbatim
        dacl: The `D:` clause
        sacl: The `S:` clause, kept verbatim when present
    """
    model_config = ConfigDict(frozen=True)

    head: str = ''
    dacl: str
    sacl: Optional[str] = None

    def to_sddl(self) -> str:
        return f"{self.head}{self.dacl}{self.sacl or ''}"

    def __str__(self):
        return self.to_sddl()


def parse_descriptor(raw: str) -> SecurityDescriptor:
    """
    Split raw SDDL text (as printed by `sc sdshow`) into its clauses.

    Raises:
        MalformedDescriptorError: If no DACL clause can be found
    """
    text = (raw or '').strip()
    match = SDDL_PATTERN.search(text)
    if not match:
        raise MalformedDescriptorError(text)
    return SecurityDescriptor(
        head=text[:match.start()],
        dacl=match.group(1),
        sacl=match.group(2),
    )


def descriptor_contains_sid(descriptor: SecurityDescriptor, sid: str) -> bool:
    """
    Whether any DACL entry is granted to sid.

    Compares the account field of each entry, so a SID that is merely a
    prefix of another never matches.
    """
    wanted = sid.casefold()
    for ace in ACE_PATTERN.findall(descriptor.dacl):
        fields = ace.split(';')
        if len(fields) > 5 and fields[5].casefold() == wanted:
            return True
    return False


def control_ace(sid: str) -> str:
    return f"(A;;{CONTROL_RIGHTS};;;{sid})"


def add_control_ace(descriptor: SecurityDescriptor, sid: str) -> SecurityDescriptor:
    """Descriptor with a control entry for sid appended to the DACL, once."""
    if descriptor_contains_sid(descriptor, sid):
        return descriptor
    return descriptor.model_copy(update={'dacl': descriptor.dacl + control_ace(sid)})


class SddlEditor:
    """
    Grants accounts the right to control a service by editing its DACL.
    """
    def __init__(self, runner: Optional[CommandRunner] = None, host: Optional[WindowsHost] = None):
        self.runner = runner or CommandRunner()
        self.host = host or WindowsHost(self.runner)

    async def resolve_user_sid(self, username: str) -> str:
        """
        Look up the SID of an account.

        Bare names are first checked with `net user`; domain-qualified names
        are checked by the lookup itself.

        Raises:
            UnknownAccountError: If the account does not exist on the host
        """
        if not username:
            raise UnknownAccountError(str(username))
        if '\\' not in username and not await self.host.user_exists(username):
            raise UnknownAccountError(username)

        script = SID_LOOKUP_SCRIPT.format(account=username.replace("'", "''"))
        result = await self.runner.run(['powershell', '-NoProfile', '-Command', script])
        match = SID_PATTERN.search(result.stdout) if result.ok else None
        if not match:
            logger.error(f"SID lookup for {username} failed: {result.stderr.strip()}")
            raise UnknownAccountError(username)
        return match.group(0)

    async def fetch_descriptor(self, service_id: str) -> SecurityDescriptor:
        """
        Read the current security descriptor of a service.

        Raises:
            UnknownServiceError: If the service is not registered
            MalformedDescriptorError: If `sc sdshow` prints no DACL
            ExecutionError: If `sc sdshow` fails
        """
        if not await self.host.service_exists(service_id):
            raise UnknownServiceError(service_id)
        raw = await self.runner.check(['sc', 'sdshow', service_id])
        return parse_descriptor(raw)

    async def write_descriptor(self, service_id: str, descriptor: SecurityDescriptor):
        """Replace the security descriptor of a service in one `sc sdset` call."""
        sddl = parse_descriptor(descriptor.to_sddl()).to_sddl()
        await self.runner.check(['sc', 'sdset', service_id, sddl])
        logger.info(f"Security descriptor of {service_id} updated")

    async def has_control_access(self, service_id: str, username: str) -> bool:
        sid = await self.resolve_user_sid(username)
        descriptor = await self.fetch_descriptor(service_id)
        return descriptor_contains_sid(descriptor, sid)

    async def grant_control_access(self, service_id: str, username: str) -> bool:
        """
        Add a control entry for username to the service DACL.

        Idempotent: nothing is written when the account already has an entry.
        Any failure happens before the single write, so the descriptor is
        either fully updated or untouched.

        Returns:
            bool: True if the descriptor was rewritten
        """
        sid = await self.resolve_user_sid(username)
        descriptor = await self.fetch_descriptor(service_id)
        if descriptor_contains_sid(descriptor, sid):
            logger.info(f"{username} ({sid}) already has access to {service_id}")
            return False

        await self.write_descriptor(service_id, add_control_ace(descriptor, sid))
        logger.info(f"Granted {username} ({sid}) control of {service_id}")
        return True
