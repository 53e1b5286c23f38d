"""Error taxonomy shared by the reader, the background workers and the hub."""


class VisualizerError(Exception):
    """Base class for pod-visualizer errors."""


class SourceUnavailable(VisualizerError):
    """The Kubernetes API cannot be reached or refused the request."""


class WatchStreamClosed(VisualizerError):
    """A watch stream ended with an error; the watcher reconnects."""


class SubscriberUnresponsive(VisualizerError):
    """A subscriber's outbound buffer is full or its channel failed."""
