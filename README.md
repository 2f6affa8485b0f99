# rtpintercept

Composable interceptors for RTP and RTCP traffic, together with a send-side
bandwidth estimator based on Google Congestion Control (GCC).

An interceptor sits between your media pipeline and the network. It can look
at or change outgoing RTP packets, incoming RTP packets and RTCP batches in
either direction. You stack interceptors with a `Chain`.

## Installation

```
pip install rtpintercept
```

The package has no runtime dependencies. To run the test suite:

```
pip install "rtpintercept[test]"
pytest
```

## Building blocks

- `rtpintercept.interceptor` holds the core types:
  - the abstract `Interceptor` and `Factory` classes;
  - the reader and writer protocols `RTPWriter`, `RTPReader`, `RTCPWriter` and
    `RTCPReader`, with callable adapters `RTPWriterFunc`, `RTPReaderFunc`,
    `RTCPWriterFunc` and `RTCPReaderFunc`;
  - the pass-through `NoOp` base class;
  - `Chain`.

  Interceptors can be used as context managers. Leaving the block closes them.
- `rtpintercept.attributes`: `Attributes` is a `dict` that travels with each
  packet. Its `get_rtp_header(raw)` and `get_rtcp_packets(raw)` methods parse
  the raw bytes once and cache the result. If the cached value has the wrong
  type, they raise `InvalidAttributeTypeError`.
- `rtpintercept.packets` covers the wire formats:
  - `RTPHeader`, with one-byte and two-byte header extensions, and
    `TransportCCExtension`;
  - the RTCP packets used for feedback: `TransportLayerCC` (made of
    `RunLengthChunk`, `StatusVectorChunk` and `RecvDelta`) and
    `CCFeedbackReport`;
  - `SenderReport`, and `RawPacket` for every other RTCP packet type;
  - `marshal_rtcp` and `unmarshal_rtcp` for compound packets.

  If bytes cannot be decoded, these raise `PacketParseError`.
- `rtpintercept.errors`: `MultiError` and `flatten_errors`.
  `MultiError.includes(error)` checks whether an error is among the held
  errors, including nested ones.
- `rtpintercept.ntp`: `to_ntp` and `to_time` convert between Unix nanoseconds
  and 64-bit NTP timestamps.
- `rtpintercept.sequencenumber`: `Unwrapper.unwrap` turns wrapping 16-bit
  sequence numbers into unbounded integers. `is_newer` compares two sequence
  numbers in wrapping order.
- `rtpintercept.feedback`: `FeedbackAdapter` records sent packets with
  `on_sent`. It maps TWCC feedback (`on_transport_cc_feedback`) or RFC 8888
  feedback (`on_rfc8888_feedback`) onto those packets and returns
  `Acknowledgment` records. All times are integer nanoseconds. An arrival of
  `0` means the packet was not received.
- `rtpintercept.gcc` is the congestion controller:
  - `send_side_bwe.SendSideBWE` combines the loss-based and delay-based
    estimators.
  - `loss_based.LossBasedBandwidthEstimator` is the loss-based estimator.
  - `delay_controller.DelayController` is the delay-based estimator. It is
    built from `ArrivalGroupAccumulator`, `SlopeEstimator` with a `Kalman`
    filter, `OveruseDetector` with an `AdaptiveThreshold`, `RateCalculator`
    and `RateController`.
  - Packets are paced by `pacer.LeakyBucketPacer` (the default) or by
    `pacer.NoOpPacer`.
- `rtpintercept.cc_interceptor`: `InterceptorFactory` and
  `CongestionControlInterceptor` connect a bandwidth estimator to an
  interceptor chain.

## Chaining interceptors

```python
from rtpintercept.interceptor import Chain, NoOp, RTPWriterFunc

class Counter(NoOp):
    def __init__(self):
        self.sent = 0

    def bind_local_stream(self, info, writer):
        def write(header, payload, attributes):
            self.sent += 1
            return writer.write(header, payload, attributes)
        return RTPWriterFunc(write)

counter = Counter()
chain = Chain([counter])
```

`Chain` binds its interceptors in order, so each one wraps the writer or
reader returned by the one before it. `Chain.close()` closes every
interceptor. If any of them fail, it then raises a `MultiError` that holds
every failure.

## Congestion control

```python
from rtpintercept.cc_interceptor import InterceptorFactory

factory = InterceptorFactory()
factory.on_new_peer_connection(
    lambda pc_id, estimator: estimator.on_target_bitrate_change(print)
)
cc = factory.new_interceptor("pc-1")
```

By default the factory creates a `SendSideBWE`. You can also pass your own
estimator factory.

- Bind outgoing streams with `cc.bind_local_stream(info, writer)`. `info`
  needs an `ssrc` and may list `rtp_header_extensions`. Each entry has a `uri`
  and an `id`. If one of them is the transport-wide CC extension, packets are
  tracked by transport sequence number. Otherwise they are tracked by SSRC and
  RTP sequence number. Packets written to the returned pacer are queued and
  sent at the target rate.
- Bind incoming RTCP with `cc.bind_rtcp_reader(reader)` so that feedback
  reaches the estimator.
- `target_bitrate()` returns the current estimate in bits per second.
  `stats()` returns the loss and delay statistics as a dictionary.
- Close the interceptor when the session ends. After that, `write_rtcp`
  raises `SendSideBWEClosedError`.

The leaky bucket pacer and the delay controller each work on background
threads. The bitrate-change callback runs on the delay controller's thread.

## What the package does not do

- It does no networking of its own. You supply the writers and readers that
  move bytes.
- Congestion control is the only working interceptor it ships.
- It has no interceptors that generate NACKs, TWCC feedback or RTCP reports.
  It only consumes feedback that the remote side sends.