"""Order fulfillment exports."""

from .fulfillment import CancellationResult, FulfillmentService, PaymentResult  # noqa: F401
from .state_machine import ActorRole, MakerOrderStateMachine, MakerTransition, OrderStateMachine  # noqa: F401
