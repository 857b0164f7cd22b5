import logging
from typing import List, NamedTuple, Optional

from hilift.core.common import HiCZoom, ZoomCallType

logger = logging.getLogger(__name__)


class ZoomAction(NamedTuple):
    """
    Parameters of one successful zoom/location transition, enough to replay it.
    """
    chromosome_x: str
    chromosome_y: str
    zoom: HiCZoom
    genome_x: float
    genome_y: float
    scale_factor: float
    reset_zoom: bool
    call_type: ZoomCallType
    resolution_locked: Optional[bool]


class ZoomActionTracker(object):
    """
    Linear undo/redo history: a bounded list of actions and the index of the current one.
    """

    def __init__(self, history_limit: int = 100) -> None:
        super().__init__()
        assert history_limit > 0, "History should hold at least one action"
        self.history_limit: int = history_limit
        self.actions: List[ZoomAction] = []
        self.current_index: int = -1

    def get_current_zoom_action(self) -> Optional[ZoomAction]:
        if self.current_index < 0:
            return None
        return self.actions[self.current_index]

    def add_zoom_state(self, action: ZoomAction) -> None:
        # Branching off an undone state drops the redo tail
        del self.actions[self.current_index + 1:]
        self.actions.append(action)
        if len(self.actions) > self.history_limit:
            del self.actions[:len(self.actions) - self.history_limit]
        self.current_index = len(self.actions) - 1
        logger.info(f"Stored zoom action #{self.current_index}: {action.chromosome_x} x {action.chromosome_y} at {action.zoom}")

    def add_if_new(self, action: ZoomAction) -> bool:
        if self.get_current_zoom_action() == action:
            return False
        self.add_zoom_state(action)
        return True

    def can_undo(self) -> bool:
        return self.current_index > 0

    def can_redo(self) -> bool:
        return self.current_index < len(self.actions) - 1

    def peek_undo(self) -> Optional[ZoomAction]:
        if not self.can_undo():
            return None
        return self.actions[self.current_index - 1]

    def peek_redo(self) -> Optional[ZoomAction]:
        if not self.can_redo():
            return None
        return self.actions[self.current_index + 1]

    def undo_zoom(self) -> Optional[ZoomAction]:
        if not self.can_undo():
            return None
        self.current_index -= 1
        return self.actions[self.current_index]

    def redo_zoom(self) -> Optional[ZoomAction]:
        if not self.can_redo():
            return None
        self.current_index += 1
        return self.actions[self.current_index]

    def clear(self) -> None:
        self.actions.clear()
        self.current_index = -1

    def __len__(self) -> int:
        return len(self.actions)
