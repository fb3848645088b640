"""
Report classes for realtime feedback on long-running transfers and benchmarks
"""
import sys
from typing import IO


class Reporter:
    """
    Base reporter class
    """

    label: str
    status: str

    def __init__(self, label: str, status: str):
        self.label = label
        self.status = status

    def update(self, status: str):
        self.status = status

    def complete(self, status: str):
        self.update(status)

    def fail(self, status: str):
        self.complete(status)


class NullReporter(Reporter):
    def __init__(self, label: str, status: str):
        pass

    def update(self, status: str):
        pass

    def complete(self, status: str):
        pass


class StreamReporter(Reporter):
    """
    Report to a stream
    """

    stream: IO[str]

    def __init__(self, label: str, status: str):
        super().__init__(label, status)
        self.stream.write(f"{label}... {status}")
        self.stream.flush()

    def update(self, status: str):
        super().update(status)
        self.stream.write(f"\r{self.label}... {status} ")
        self.stream.flush()

    def complete(self, status: str):
        self.update(status)
        self.stream.write("\n")


class StdoutReporter(StreamReporter):
    stream: IO[str] = sys.stdout
