"""
Domain value objects.
"""

from parloir.domain.value_objects.channel_name import ChannelName

__all__ = ["ChannelName"]
