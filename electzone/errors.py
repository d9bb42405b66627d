# electzone/errors.py
# Errors raised by the stores and the vote submission protocol


class StoreError(Exception):
    """Raised by a store when the backend call itself failed."""


class VoteSubmissionError(Exception):
    """
    Base class for every way a single vote submission attempt can fail.

    kind      -- short machine-readable tag sent to the client
    next_step -- the ballot step the client should show afterwards
    """

    kind = "submission_error"
    next_step = "review"
    status_code = 500

    def __init__(self, message: str, kind: str = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind


class EligibilityError(VoteSubmissionError):
    kind = "already_voted"
    next_step = "home"
    status_code = 409


class ValidationError(VoteSubmissionError):
    kind = "invalid_selections"
    next_step = "ballot"
    status_code = 422


class ElectionUnavailableError(VoteSubmissionError):
    kind = "election_unavailable"
    next_step = "home"
    status_code = 409


class TransientStoreError(VoteSubmissionError):
    kind = "store_error"
    next_step = "review"
    status_code = 503


class PartialWriteInconsistency(VoteSubmissionError):
    kind = "partial_write"
    next_step = "contact-admin"
    status_code = 500

    def __init__(self, message: str, vote_token: str = None, payload_hash: str = None):
        super().__init__(message)
        self.vote_token = vote_token
        self.payload_hash = payload_hash
