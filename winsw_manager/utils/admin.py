import ctypes
import logging

logger = logging.getLogger("winsw_manager.admin")


def is_admin() -> bool:
    """
    Check if the current process has administrative privileges.

    Installing services and editing their security descriptors both
    require them.

    Returns:
        bool: True if the process has admin rights, False otherwise
    """
    try:
        return ctypes.windll.shell32.IsUserAnAdmin() != 0
    except (AttributeError, OSError) as e:
        # ctypes.windll only exists on Windows
        logger.debug(f"Admin check unavailable: {str(e)}")
        return False
