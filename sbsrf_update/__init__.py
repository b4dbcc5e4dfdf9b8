"""sbsrf-update — keep sbsrf input method configurations current.

Downloads the latest sbsrf release, backs up each device's live Rime
configuration, installs the matching assets, and rolls back on request.

Quickstart::

    from sbsrf_update.settings import Settings
    from sbsrf_update.registry import DeviceRegistry

    settings = Settings.from_env()
    registry = DeviceRegistry(settings)
    print(registry.names())
"""

__version__ = "1.0.0"
