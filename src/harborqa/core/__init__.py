"""Orchestration core: contracts, events, cancellation and the suite model."""

from harborqa.core.bus import Consumer, EventBus
from harborqa.core.cancellation import CancellationToken, ShutdownController
from harborqa.core.events import Event, EventSink, EventType, SuiteFinishedEvent, TestCompletedEvent
from harborqa.core.ports import PortAllocator, get_port_allocator
from harborqa.core.registry import DecodeContext, KindRegistry, Registries
from harborqa.core.results import ResultsAccumulator
from harborqa.core.suite import Fixture, SuiteResult, TestSuite
from harborqa.core.test import SuiteTest, TestResult, TestRunOptions
from harborqa.core.unit import Unit, UnitStartOptions, UnitState

__all__ = [
    "CancellationToken",
    "Consumer",
    "DecodeContext",
    "Event",
    "EventBus",
    "EventSink",
    "EventType",
    "Fixture",
    "KindRegistry",
    "PortAllocator",
    "Registries",
    "ResultsAccumulator",
    "ShutdownController",
    "SuiteFinishedEvent",
    "SuiteResult",
    "SuiteTest",
    "TestCompletedEvent",
    "TestResult",
    "TestRunOptions",
    "TestSuite",
    "Unit",
    "UnitStartOptions",
    "UnitState",
    "get_port_allocator",
]
