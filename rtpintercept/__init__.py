"""Composable RTP/RTCP interceptors, packet formats and send-side congestion control."""

__version__ = "0.1.0"