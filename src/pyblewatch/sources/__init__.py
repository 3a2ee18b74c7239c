"""Radio-facing collaborators of the watcher.

:mod:`pyblewatch.sources.base` declares what the watcher needs from the
platform; :mod:`pyblewatch.sources.bleak_scanner` implements it on top of
``bleak``.
"""

from pyblewatch.sources.base import AdvertisementCallback, AdvertisementSource, DeviceResolver

__all__ = ["AdvertisementCallback", "AdvertisementSource", "DeviceResolver"]
