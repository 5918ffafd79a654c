"""Bootstrap sifpull's transport plugins using SAF."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scitrera_app_framework import Variables, register_plugin, get_extensions
from scitrera_app_framework.util import find_types_in_modules

from sifpull.errors import UserInputError
from sifpull.uri import Transport

if TYPE_CHECKING:
    from sifpull.transports.base import TransportPlugin

logger = logging.getLogger(__name__)

EXT_TRANSPORT = "sifpull.transport"

# Module-level singleton for the sifpull Variables instance
_variables: Variables | None = None


def init_sifpull(v: Variables | None = None, log_level: str = "WARNING") -> Variables:
    """Initialize sifpull's plugin system.

    Args:
        v: Optional pre-existing Variables instance to reuse.
        log_level: SAF log level (default WARNING to reduce verbosity).

    Returns:
        The initialized Variables instance.
    """
    global _variables

    if _variables is not None and v is None:
        return _variables

    if v is None:
        from scitrera_app_framework import init_framework_desktop
        v = init_framework_desktop("sifpull", log_level=log_level, fault_handler=False, shutdown_hooks=False,
                                   fixed_logger=logger)

    _variables = v

    # Import here to avoid circular imports
    from sifpull.transports.base import TransportPlugin

    # Auto-discover all TransportPlugin subclasses in sifpull.transports
    discovered = list(find_types_in_modules("sifpull.transports", TransportPlugin))
    for transport_cls in discovered:
        if not transport_cls.transport_name:
            continue
        try:
            register_plugin(transport_cls, v=v)
            logger.debug("Registered transport: %s", transport_cls.__name__)
        except (ValueError, TypeError) as e:
            logger.debug("Skipping transport %s: %s", transport_cls.__name__, e)

    return v


def get_variables() -> Variables:
    """Get the sifpull Variables instance, initializing if needed."""
    global _variables
    if _variables is None:
        init_sifpull()
    return _variables


def get_transport(transport: Transport, v: Variables | None = None) -> TransportPlugin:
    """Select the one transport plugin that handles ``transport``.

    Falls back to the plugin flagged ``is_default`` when no plugin claims
    the variant explicitly.

    Raises:
        UserInputError: If nothing handles the transport.
    """
    if v is None:
        v = get_variables()

    all_transports = get_extensions(EXT_TRANSPORT, v=v)
    default = None
    for _plugin_name, plugin in sorted(all_transports.items()):
        if plugin.handles(transport):
            return plugin
        if plugin.is_default and default is None:
            default = plugin
    if default is not None:
        return default

    available = sorted(p.transport_name for p in all_transports.values())
    raise UserInputError("No transport handles %r. Available: %s" % (transport.value, available))


def list_transports(v: Variables | None = None) -> list[str]:
    """List all registered transport names."""
    if v is None:
        v = get_variables()

    all_transports = get_extensions(EXT_TRANSPORT, v=v)
    return sorted(t.transport_name for t in all_transports.values())
