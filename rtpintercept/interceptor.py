"""Interceptor interfaces, adapters, the no-op interceptor and chains."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .attributes import Attributes
from .errors import flatten_errors
from .packets import RTPHeader


class RTPWriter(Protocol):
    def write(self, header: RTPHeader, payload: bytes, attributes: Optional[Attributes]) -> int: ...


class RTPReader(Protocol):
    def read(self, data: bytes, attributes: Optional[Attributes]) -> tuple[int, Optional[Attributes]]: ...


class RTCPWriter(Protocol):
    def write(self, packets: list, attributes: Optional[Attributes]) -> int: ...


class RTCPReader(Protocol):
    def read(self, data: bytes, attributes: Optional[Attributes]) -> tuple[int, Optional[Attributes]]: ...


@dataclass
class RTPWriterFunc:
    func: Callable[[RTPHeader, bytes, Optional[Attributes]], int]

    def write(self, header, payload, attributes):
        return self.func(header, payload, attributes)


@dataclass
class RTPReaderFunc:
    func: Callable[[bytes, Optional[Attributes]], tuple]

    def read(self, data, attributes):
        return self.func(data, attributes)


@dataclass
class RTCPWriterFunc:
    func: Callable[[list, Optional[Attributes]], int]

    def write(self, packets, attributes):
        return self.func(packets, attributes)


@dataclass
class RTCPReaderFunc:
    func: Callable[[bytes, Optional[Attributes]], tuple]

    def read(self, data, attributes):
        return self.func(data, attributes)


class Interceptor(ABC):
    """Hooks that may modify incoming and outgoing RTP/RTCP traffic."""

    @abstractmethod
    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader: ...

    @abstractmethod
    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter: ...

    @abstractmethod
    def bind_local_stream(self, info: Any, writer: RTPWriter) -> RTPWriter: ...

    @abstractmethod
    def unbind_local_stream(self, info: Any) -> None: ...

    @abstractmethod
    def bind_remote_stream(self, info: Any, reader: RTPReader) -> RTPReader: ...

    @abstractmethod
    def unbind_remote_stream(self, info: Any) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Factory(ABC):
    """Builds interceptors."""

    @abstractmethod
    def new_interceptor(self, interceptor_id: str) -> Interceptor: ...


class NoOp(Interceptor):
    """Interceptor that passes everything through unchanged."""

    def bind_rtcp_reader(self, reader):
        return reader

    def bind_rtcp_writer(self, writer):
        return writer

    def bind_local_stream(self, info, writer):
        return writer

    def unbind_local_stream(self, info):
        pass

    def bind_remote_stream(self, info, reader):
        return reader

    def unbind_remote_stream(self, info):
        pass

    def close(self):
        pass


class Chain(Interceptor):
    """Runs child interceptors in order."""

    def __init__(self, interceptors: Iterable[Interceptor]):
        self.interceptors = list(interceptors)

    def bind_rtcp_reader(self, reader):
        for i in self.interceptors:
            reader = i.bind_rtcp_reader(reader)
        return reader

    def bind_rtcp_writer(self, writer):
        for i in self.interceptors:
            writer = i.bind_rtcp_writer(writer)
        return writer

    def bind_local_stream(self, info, writer):
        for i in self.interceptors:
            writer = i.bind_local_stream(info, writer)
        return writer

    def unbind_local_stream(self, info):
        for i in self.interceptors:
            i.unbind_local_stream(info)

    def bind_remote_stream(self, info, reader):
        for i in self.interceptors:
            reader = i.bind_remote_stream(info, reader)
        return reader

    def unbind_remote_stream(self, info):
        for i in self.interceptors:
            i.unbind_remote_stream(info)

    def close(self):
        errors = []
        for i in self.interceptors:
            try:
                i.close()
            except Exception as exc:  # every child gets closed
                errors.append(exc)
        err = flatten_errors(errors)
        if err is not None:
            raise err