from flowforge.controller.records import RunStatus
from flowforge.errors import InvalidRunTransition


class RunStateMachine:
    _transitions: dict[RunStatus, tuple[RunStatus, ...]] = {
        RunStatus.PENDING: (RunStatus.RUNNING,),
        RunStatus.RUNNING: (RunStatus.SUCCESS, RunStatus.FAILED, RunStatus.CANCELLED),
        RunStatus.SUCCESS: (),
        RunStatus.FAILED: (),
        RunStatus.CANCELLED: (),
    }

    def __init__(self) -> None:
        self.current_state = RunStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return not self._transitions[self.current_state]

    def can_transition(self, target_state: RunStatus) -> bool:
        return target_state in self._transitions[self.current_state]

    def transition(self, target_state: RunStatus) -> RunStatus:
        if not self.can_transition(target_state):
            raise InvalidRunTransition(
                f"Invalid transition: {self.current_state.value} -> {target_state.value}"
            )
        self.current_state = target_state
        return self.current_state
