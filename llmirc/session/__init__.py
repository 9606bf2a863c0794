"""Connection supervision and per-channel orchestration."""

from llmirc.session.backoff import Backoff
from llmirc.session.channel import ChannelWorker
from llmirc.session.supervisor import SessionSupervisor

__all__ = ["Backoff", "ChannelWorker", "SessionSupervisor"]
