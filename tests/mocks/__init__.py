from tests.mocks.channels import BrokenListenerChannel, FailingChannel, FlakyChannel, RecordingChannel
from tests.mocks.sse import collect_frames, next_frame, parse_frame

__all__ = [
    "BrokenListenerChannel",
    "FailingChannel",
    "FlakyChannel",
    "RecordingChannel",
    "collect_frames",
    "next_frame",
    "parse_frame",
]
