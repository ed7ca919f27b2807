"""Exceptions outbox handlers raise to steer the dispatcher."""


class PermanentOutboxError(Exception):
    """The work item can never succeed; fail it now instead of retrying."""
