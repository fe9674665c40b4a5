import pytest

from x402_exact.engine.exceptions import InvalidTransition
from x402_exact.engine.states import TERMINAL_STATES, TRANSITIONS, PaymentFlow, PaymentState


def test_happy_path():
    flow = PaymentFlow()
    for state in (
        PaymentState.QUOTING,
        PaymentState.AWAITING_SIGNATURE,
        PaymentState.PAYING,
        PaymentState.FULFILLED,
    ):
        flow.transition(state)

    assert flow.is_done
    assert flow.error is None
    assert flow.path == (
        PaymentState.IDLE,
        PaymentState.QUOTING,
        PaymentState.AWAITING_SIGNATURE,
        PaymentState.PAYING,
        PaymentState.FULFILLED,
    )


def test_free_resource_skips_payment():
    flow = PaymentFlow()
    flow.transition(PaymentState.QUOTING)
    flow.transition(PaymentState.FULFILLED)
    assert flow.state is PaymentState.FULFILLED


def test_error_state_records_message():
    flow = PaymentFlow()
    flow.transition(PaymentState.QUOTING)
    flow.transition(PaymentState.QUOTE_MALFORMED, error="bad json")

    assert flow.state.is_error
    assert flow.error == "bad json"


def test_terminal_states_have_no_exits():
    for state in TERMINAL_STATES:
        assert state not in TRANSITIONS
        flow = PaymentFlow()
        flow.state = state
        for target in PaymentState:
            assert not flow.can_transition(target)


@pytest.mark.parametrize(
    "path",
    [
        (PaymentState.PAYING,),
        (PaymentState.QUOTING, PaymentState.PAYING),
        (PaymentState.QUOTING, PaymentState.AWAITING_SIGNATURE, PaymentState.FULFILLED),
        (PaymentState.QUOTING, PaymentState.AWAITING_SIGNATURE, PaymentState.PAYING, PaymentState.AWAITING_SIGNATURE),
        (PaymentState.QUOTING, PaymentState.FULFILLED, PaymentState.QUOTING),
    ],
)
def test_illegal_transitions_raise(path):
    flow = PaymentFlow()
    *legal, illegal = path
    for state in legal:
        flow.transition(state)

    with pytest.raises(InvalidTransition) as exc_info:
        flow.transition(illegal)
    assert exc_info.value.target_state is illegal
    assert flow.state is (legal[-1] if legal else PaymentState.IDLE)


def test_reset_only_from_terminal_state():
    flow = PaymentFlow()
    flow.transition(PaymentState.QUOTING)
    with pytest.raises(InvalidTransition):
        flow.reset()

    flow.transition(PaymentState.REQUEST_FAILED, error="timeout")
    flow.reset()
    assert flow.state is PaymentState.IDLE
    assert flow.path == (PaymentState.IDLE,)
    assert flow.error is None


def test_fulfilled_is_terminal_but_not_error():
    assert PaymentState.FULFILLED.is_terminal
    assert not PaymentState.FULFILLED.is_error
    assert PaymentState.SIGNATURE_DENIED.is_error
    assert not PaymentState.PAYING.is_terminal
