from __future__ import annotations

from statemachine import State, StateMachine

from arcane_market.api.models import AuctionPhase


class AuctionFSM(StateMachine):
    """Phase machine for one auction cycle.

    inactive -> setup -> active(resource) -> resolution -> active(next) -> ... -> inactive

    The machine only guards transitions; countdowns, positions and the current
    resource are owned by the AuctionManager.
    """

    inactive = State(AuctionPhase.inactive.value, value=AuctionPhase.inactive.value, initial=True)
    setup = State(AuctionPhase.setup.value, value=AuctionPhase.setup.value)
    active = State(AuctionPhase.active.value, value=AuctionPhase.active.value)
    resolution = State(AuctionPhase.resolution.value, value=AuctionPhase.resolution.value)

    open_setup = inactive.to(setup)
    # A round may also be opened directly (manual control) or restarted while active.
    open_round = setup.to(active) | resolution.to(active) | inactive.to(active) | active.to.itself()
    close_round = active.to(resolution)
    finish = resolution.to(inactive)

    def __init__(self, phase: AuctionPhase = AuctionPhase.inactive):
        super().__init__(start_value=phase.value)

    @property
    def phase(self) -> AuctionPhase:
        return AuctionPhase(str(self.current_state.value))
