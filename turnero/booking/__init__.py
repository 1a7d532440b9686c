from turnero.booking.config_store import ConfigStore, InMemoryConfigStore, JsonFileConfigStore
from turnero.booking.state_machine import BookingState, BookingStateMachine, BookingTrigger
from turnero.booking.token_codec import TokenCodec
from turnero.booking.workflow import BookingWorkflow, build_workflow

__all__ = [
    "BookingWorkflow",
    "build_workflow",
    "BookingStateMachine",
    "BookingState",
    "BookingTrigger",
    "TokenCodec",
    "ConfigStore",
    "InMemoryConfigStore",
    "JsonFileConfigStore",
]
