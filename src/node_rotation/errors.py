"""
Error taxonomy for node rotation.

Every step error lands in one of these classes; the Orchestrator maps them
to bounded retry (transient, only for polling steps) or terminal failure.
"""


class RotationError(Exception):
    """Base error for node rotation."""

    pass


class TransientOperationalError(RotationError):
    """Condition not reached yet, or a flaky read. Retried by polling steps."""

    pass


class NotConverged(TransientOperationalError):
    """Observed node count differs from the expected count."""

    pass


class MigrationIncomplete(TransientOperationalError):
    """Shards remain on the target node, or the cluster is not green yet."""

    pass


class PreconditionFailed(RotationError):
    """Wrong group shape or unhealthy cluster at a gate. Never retried."""

    pass


class UnhealthyCluster(PreconditionFailed):
    """Cluster health was not green at the health gate."""

    pass


class ConvergenceTimeout(RotationError):
    """A polling step exhausted its retry budget."""

    def __init__(self, state: str, attempts: int, last_error: BaseException | None = None):
        self.state = state
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"{state} did not complete after {attempts} attempts{detail}")


class UnexpectedState(RotationError):
    """An invariant was violated mid-run (e.g. the group disappeared)."""

    pass


class ClientError(RotationError):
    """A fleet or cluster call failed."""

    pass


def map_client_error(e: Exception) -> RotationError:
    """Translate an adapter exception into the rotation taxonomy."""
    import httpx
    from botocore.exceptions import BotoCoreError, ClientError as BotoClientError

    if isinstance(e, RotationError):
        return e
    if isinstance(e, (httpx.TimeoutException, httpx.TransportError)):
        return TransientOperationalError(f"cluster unreachable: {e}")
    if isinstance(e, httpx.HTTPStatusError):
        if e.response.status_code >= 500:
            return TransientOperationalError(f"cluster error {e.response.status_code}")
        return ClientError(f"cluster rejected request ({e.response.status_code}): {e}")
    if isinstance(e, BotoClientError):
        code = e.response.get("Error", {}).get("Code", "")
        if code in {"Throttling", "ThrottlingException", "RequestLimitExceeded"}:
            return TransientOperationalError(f"fleet throttled: {code}")
        if code == "ScalingActivityInProgress":
            return TransientOperationalError(f"fleet busy: {code}")
        return ClientError(f"fleet call failed ({code}): {e}")
    if isinstance(e, BotoCoreError):
        return TransientOperationalError(f"fleet unreachable: {e}")
    return ClientError(str(e))
