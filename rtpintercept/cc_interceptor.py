"""Interceptor that feeds traffic into a pluggable bandwidth estimator."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, Optional, Protocol

from .attributes import Attributes
from .gcc.send_side_bwe import SendSideBWE
from .interceptor import NoOp


class BandwidthEstimator(Protocol):
    """What a congestion control interceptor needs from an estimator."""

    def add_stream(self, info, writer): ...

    def write_rtcp(self, packets, attributes) -> None: ...

    def target_bitrate(self) -> int: ...

    def on_target_bitrate_change(self, callback: Callable[[int], Any]) -> None: ...

    def stats(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


class _EstimatingRTCPReader:
    """Passes every RTCP batch read to the estimator."""

    def __init__(self, estimator: BandwidthEstimator, reader) -> None:
        self._estimator = estimator
        self._reader = reader

    def read(self, data: bytes, attributes):
        n, attrs = self._reader.read(data, attributes)
        buf = bytes(data[:n])
        if not isinstance(attrs, Attributes):
            attrs = Attributes(attrs or {})
        packets = attrs.get_rtcp_packets(buf)
        self._estimator.write_rtcp(packets, attrs)
        return n, attrs


class CongestionControlInterceptor(NoOp):
    """Interceptor running a bandwidth estimator on a peer connection."""

    def __init__(self, estimator: BandwidthEstimator) -> None:
        super().__init__()
        self.estimator = estimator

    def bind_rtcp_reader(self, reader):
        return _EstimatingRTCPReader(self.estimator, reader)

    def bind_local_stream(self, info, writer):
        return self.estimator.add_stream(info, writer)

    def close(self) -> None:
        self.estimator.close()


class InterceptorFactory:
    """Creates congestion control interceptors, one estimator per interceptor."""

    def __init__(
        self,
        estimator_factory: Optional[Callable[[], BandwidthEstimator]] = None,
        options: Iterable[Callable[[CongestionControlInterceptor], None]] = (),
    ) -> None:
        self._estimator_factory = estimator_factory or SendSideBWE
        self._options = list(options)
        self._on_new_peer_connection: Optional[Callable[[str, BandwidthEstimator], Any]] = None

    def on_new_peer_connection(
        self, callback: Optional[Callable[[str, BandwidthEstimator], Any]]
    ) -> None:
        """Set the function called with the id and estimator of each new interceptor."""
        self._on_new_peer_connection = callback

    def new_interceptor(self, interceptor_id: str) -> CongestionControlInterceptor:
        estimator = self._estimator_factory()
        interceptor = CongestionControlInterceptor(estimator)
        for option in self._options:
            option(interceptor)
        if self._on_new_peer_connection is not None:
            self._on_new_peer_connection(interceptor_id, interceptor.estimator)
        return interceptor