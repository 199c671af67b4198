"""
Render a ServiceConfiguration as a WinSW service configuration document.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Optional, Union

from .models import (
    AUTO_ROLL_MODES, KEEP_FILES_MODES, PATTERN_MODES, SIZE_THRESHOLD_MODES,
    LogPolicy, ServiceAccount, ServiceConfiguration,
)

logger = logging.getLogger("winsw_manager.serializer")


def _text(value: Union[str, int, bool]) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _add_child(parent: ET.Element, tag: str, value) -> Optional[ET.Element]:
    """Append <tag>value</tag> unless the value is absent."""
    if value is None:
        return None
    child = ET.SubElement(parent, tag)
    child.text = _text(value)
    return child


def _add_log(service: ET.Element, log: LogPolicy):
    _add_child(service, 'logpath', log.path)
    if log.mode is None:
        return

    log_element = ET.SubElement(service, 'log', {'mode': log.mode.value})
    if log.mode in SIZE_THRESHOLD_MODES:
        _add_child(log_element, 'sizeThreshold', log.size_threshold)
    if log.mode in KEEP_FILES_MODES:
        _add_child(log_element, 'keepFiles', log.keep_files)
    if log.mode in AUTO_ROLL_MODES:
        _add_child(log_element, 'autoRollAtTime', log.auto_roll_at_time)
    if log.mode in PATTERN_MODES:
        _add_child(log_element, 'pattern', log.date_pattern)


def _add_account(service: ET.Element, account: ServiceAccount):
    fields = [
        ('domain', account.domain),
        ('username', account.username),
        ('password', account.password),
        # Only an explicit grant is written; false leaves the wrapper default
        ('allowservicelogon', True if account.allow_service_logon else None),
    ]
    if all(value is None for _, value in fields):
        return
    account_element = ET.SubElement(service, 'serviceaccount')
    for tag, value in fields:
        _add_child(account_element, tag, value)


def build_service_xml(config: ServiceConfiguration) -> str:
    """
    Build the WinSW configuration document for a service.

    Output is deterministic and has no XML declaration. Absent optional
    settings produce no element at all.

    Args:
        config: Validated service configuration

    Returns:
        str: The XML document
    """
    service = ET.Element('service')
    _add_child(service, 'id', config.id)
    _add_child(service, 'name', config.name)
    _add_child(service, 'executable', config.executable)
    _add_child(service, 'description', config.description)
    if config.arguments:
        _add_child(service, 'arguments', ' '.join(config.arguments))
    if config.log is not None:
        _add_log(service, config.log)
    if config.account is not None:
        _add_account(service, config.account)

    ET.indent(service, space='  ')
    return ET.tostring(service, encoding='unicode')


def write_service_xml(config: ServiceConfiguration) -> str:
    """
    Write the configuration document to config.config_file_path,
    replacing any existing file.

    Returns:
        str: Path of the written file
    """
    path = config.config_file_path
    with open(path, 'w', encoding='utf-8') as f:
        f.write(build_service_xml(config))
    logger.info(f"Service configuration written to {path}")
    return path
