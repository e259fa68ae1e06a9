from enum import Enum


class InboundState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    CUSTOMER_RESOLVED = "customer_resolved"
    CONVERSATION_RESOLVED = "conversation_resolved"
    MESSAGES_PERSISTED = "messages_persisted"
    ACKNOWLEDGED = "acknowledged"
    FAILED_NON_FATAL = "failed_non_fatal"


TERMINAL_STATES = {InboundState.ACKNOWLEDGED, InboundState.FAILED_NON_FATAL}

VALID_TRANSITIONS = {
    InboundState.RECEIVED: [InboundState.VALIDATED],
    # Non-message triggers are acknowledged straight after validation
    InboundState.VALIDATED: [InboundState.CUSTOMER_RESOLVED, InboundState.ACKNOWLEDGED],
    InboundState.CUSTOMER_RESOLVED: [InboundState.CONVERSATION_RESOLVED],
    InboundState.CONVERSATION_RESOLVED: [InboundState.MESSAGES_PERSISTED],
    InboundState.MESSAGES_PERSISTED: [InboundState.ACKNOWLEDGED],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: InboundState, to_state: InboundState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: InboundState, to_state: InboundState) -> bool:
    """Check if transition is valid. Any non-terminal state may fail."""
    if to_state == InboundState.FAILED_NON_FATAL:
        return from_state not in TERMINAL_STATES
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: InboundState, to_state: InboundState) -> InboundState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def fail(current_state: InboundState) -> InboundState:
    """Move a webhook run into the non-fatal failure state."""
    return transition(current_state, InboundState.FAILED_NON_FATAL)


def acknowledge(current_state: InboundState) -> InboundState:
    """Acknowledge the webhook; failed runs stay failed."""
    if current_state == InboundState.FAILED_NON_FATAL:
        return current_state
    return transition(current_state, InboundState.ACKNOWLEDGED)
