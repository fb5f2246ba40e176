"""Error taxonomy for the group engine and its gateway."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine conditions surfaced to callers."""

    code = "engine_error"


class NotOnHostPage(EngineError):
    code = "not_on_host_page"


class NoEntitiesFound(EngineError):
    code = "no_entities_found"


class GroupNotFound(EngineError, ValueError):
    code = "group_not_found"

    def __init__(self, group_id: str) -> None:
        super().__init__("Group not found")
        self.group_id = group_id


class InvalidRequest(EngineError, ValueError):
    code = "invalid_request"


class ConvergenceFailure(EngineError):
    """Recorded, never raised out of the visibility controller."""

    code = "convergence_failure"

    def __init__(self, entity_id: str, target: bool, attempts: int) -> None:
        super().__init__(
            f"Entity '{entity_id}' did not reach visible={target} after {attempts} attempts"
        )
        self.entity_id = entity_id
        self.target = target
        self.attempts = attempts


class ChannelUnavailable(EngineError):
    code = "channel_unavailable"
