"""View-state machine for screen navigation.

Navigation is flat: every screen has at most one fixed back target, so there
is no history stack. Transitions are synchronous and only touch the active
view and the active chat selection.
"""

from typing import Callable, Dict, List, Optional

import structlog

from ..domain.models import NavigationState, ViewState

logger = structlog.get_logger()

BACK_TARGETS: Dict[ViewState, ViewState] = {
    ViewState.AUTH_SIGNUP: ViewState.AUTH_LOGIN,
    ViewState.AUTH_VERIFY: ViewState.AUTH_LOGIN,
    ViewState.MAP: ViewState.HOME,
    ViewState.MARKETPLACE: ViewState.HOME,
    ViewState.CHATS: ViewState.HOME,
    ViewState.CHAT_DETAIL: ViewState.CHATS,
    ViewState.PROFILE: ViewState.HOME,
    ViewState.ADMIN: ViewState.HOME,
    ViewState.CREATE_POST: ViewState.HOME,
}

# Bottom navigation bar, in display order
NAV_ITEMS: List[ViewState] = [
    ViewState.HOME,
    ViewState.MARKETPLACE,
    ViewState.CREATE_POST,
    ViewState.CHATS,
    ViewState.PROFILE,
]

NAV_BAR_VIEWS = frozenset({
    ViewState.HOME,
    ViewState.MAP,
    ViewState.MARKETPLACE,
    ViewState.CREATE_POST,
    ViewState.CHATS,
    ViewState.PROFILE,
    ViewState.ADMIN,
})

TransitionListener = Callable[[NavigationState, NavigationState], None]


class ViewStateMachine:
    """Single source of truth for the visible screen."""

    def __init__(self, initial: ViewState = ViewState.SPLASH) -> None:
        self._state = NavigationState(view=initial)
        self._listeners: List[TransitionListener] = []

    @property
    def view(self) -> ViewState:
        """The active view."""
        return self._state.view

    @property
    def active_chat_id(self) -> Optional[str]:
        """Conversation shown on the chat detail screen, if any."""
        return self._state.active_chat_id

    def snapshot(self) -> NavigationState:
        """Current view and chat selection."""
        return self._state

    def on_transition(self, listener: TransitionListener) -> None:
        """Call ``listener(previous, current)`` after every transition."""
        self._listeners.append(listener)

    def transition(self, target: ViewState, chat_id: Optional[str] = None) -> NavigationState:
        """Make ``target`` the active view.

        ``CHAT_DETAIL`` needs a chat id; without one the machine lands on the
        chats list instead of a detail screen with no subject.
        """
        if target == ViewState.CHAT_DETAIL:
            if chat_id and chat_id.strip():
                new_state = NavigationState(view=target, active_chat_id=chat_id)
            else:
                logger.warning("chat_detail_without_chat", fallback=ViewState.CHATS.value)
                new_state = NavigationState(view=ViewState.CHATS)
        else:
            new_state = NavigationState(view=target)

        previous, self._state = self._state, new_state
        logger.info("view_transition", source=previous.view.value, target=new_state.view.value)
        for listener in list(self._listeners):
            listener(previous, new_state)
        return new_state

    def go_back(self, from_view: Optional[ViewState] = None) -> NavigationState:
        """Follow the fixed back target of ``from_view`` (default: current view)."""
        source = from_view or self.view
        target = BACK_TARGETS.get(source)
        if target is None:
            return self._state
        return self.transition(target)

    def shows_navigation_bar(self) -> bool:
        """Whether the bottom navigation bar is visible on the active view."""
        return self.view in NAV_BAR_VIEWS
