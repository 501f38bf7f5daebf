"""
Consent Errors

Hard-fail paths of the bilateral consent flow. Store lookups, state updates
and chain walks never raise; they return None instead.
"""


class ConsentError(Exception):
    """Base class for consent protocol failures."""


class ProposalNotFoundError(ConsentError, KeyError):
    """No proposal is registered under the given id."""

    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(f"Proposal not found: {proposal_id}")

    def __str__(self) -> str:
        return f"Proposal not found: {self.proposal_id}"


class RecipientMismatchError(ConsentError, PermissionError):
    """The acceptor is not the party the proposal was addressed to."""

    def __init__(self, proposal_id: str, expected: str, actual: str):
        self.proposal_id = proposal_id
        self.expected = expected
        self.actual = actual
        super().__init__("Acceptor does not match intended recipient")


class ProposalClosedError(ConsentError):
    """The proposal already left the PROPOSED state."""

    def __init__(self, proposal_id: str, state: str):
        self.proposal_id = proposal_id
        self.state = state
        super().__init__(f"Proposal {proposal_id} is already {state}")
