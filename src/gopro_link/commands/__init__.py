"""Accessory HTTP commands.

- HTTP commands: preview stream, photo mode, shutter
- Media commands: media index, metadata, bulk delete
"""

from .base import *  # noqa: F403
from .http_commands import *  # noqa: F403
from .media_commands import *  # noqa: F403
