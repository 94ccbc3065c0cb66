"""
Preview scheduler state machine.

All scheduling decisions live in `transition(state, event) -> (state, effects)`.
The driver (PreviewRenderer) owns one SchedulerState, feeds it events and
performs the returned effects; nothing here touches threads or Qt.

Guarantees:
- at most one render is in flight
- a newer edit replaces an unconsumed pending one
- a completion from an older generation is never published
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np

from cinegrade.pipeline.request import EditState, RenderRequest


class Phase(Enum):
    IDLE = 'idle'
    RENDERING = 'rendering'


@dataclass(frozen=True)
class SchedulerState:
    phase: Phase = Phase.IDLE
    generation: int = 0
    next_request_id: int = 1
    pending: Optional[RenderRequest] = None
    in_flight: Optional[RenderRequest] = None
    preview: Optional[np.ndarray] = None
    preview_request_id: Optional[int] = None


# ----------------- Events -----------------

@dataclass(frozen=True)
class EditSubmitted:
    source: np.ndarray
    edit_state: EditState


@dataclass(frozen=True)
class RenderFinished:
    request: RenderRequest
    result: Optional[np.ndarray]


@dataclass(frozen=True)
class Invalidated:
    clear_preview: bool = True


Event = Union[EditSubmitted, RenderFinished, Invalidated]


# ----------------- Effects -----------------

@dataclass(frozen=True)
class StartRender:
    request: RenderRequest


@dataclass(frozen=True)
class PreviewPublished:
    request: RenderRequest
    image: np.ndarray


@dataclass(frozen=True)
class PreviewCleared:
    pass


@dataclass(frozen=True)
class StaleDiscarded:
    request: RenderRequest


Effect = Union[StartRender, PreviewPublished, PreviewCleared, StaleDiscarded]


def _drain(state: SchedulerState, effects: List[Effect]) -> Tuple[SchedulerState, List[Effect]]:
    """Start the pending request if there is one, otherwise go idle."""
    if state.pending is None:
        return replace(state, phase=Phase.IDLE, in_flight=None), effects
    request = state.pending
    state = replace(state, phase=Phase.RENDERING, pending=None, in_flight=request)
    return state, effects + [StartRender(request)]


def transition(state: SchedulerState, event: Event) -> Tuple[SchedulerState, List[Effect]]:
    if isinstance(event, EditSubmitted):
        request = RenderRequest(
            request_id=state.next_request_id,
            generation=state.generation,
            source=event.source,
            edit_state=event.edit_state,
        )
        state = replace(state, pending=request, next_request_id=state.next_request_id + 1)
        if state.phase is Phase.IDLE:
            return _drain(state, [])
        return state, []

    if isinstance(event, RenderFinished):
        in_flight = state.in_flight
        if in_flight is None or in_flight.request_id != event.request.request_id:
            # Not the render we started: nothing to do
            return state, []

        effects: List[Effect] = []
        if event.request.generation != state.generation:
            effects.append(StaleDiscarded(event.request))
        elif event.result is not None:
            state = replace(state, preview=event.result, preview_request_id=event.request.request_id)
            effects.append(PreviewPublished(event.request, event.result))
        return _drain(replace(state, in_flight=None), effects)

    if isinstance(event, Invalidated):
        # The in-flight render keeps running; its result fails the generation check
        state = replace(state, generation=state.generation + 1, pending=None)
        if event.clear_preview and state.preview is not None:
            return replace(state, preview=None, preview_request_id=None), [PreviewCleared()]
        return state, []

    raise TypeError(f"Unknown scheduler event: {event!r}")
