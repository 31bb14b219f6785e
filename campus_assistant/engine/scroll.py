"""Auto-follow decision for the conversation view."""

from __future__ import annotations

from typing import Optional


class ScrollFollowController:
    """Follows newly revealed content unless the user has scrolled away.

    Scrolling up pauses auto-follow; scrolling back to within ``threshold``
    of the bottom resumes it.
    """

    def __init__(self, threshold: float = 20.0) -> None:
        self.threshold = threshold
        self.reset()

    def reset(self) -> None:
        self.user_is_scrolling = False
        self.should_auto_scroll = True
        self.offset = 0.0
        self.content_height = 0.0
        self.viewport_height = 0.0

    def is_near_bottom(self, offset: Optional[float] = None) -> bool:
        offset = self.offset if offset is None else offset
        return offset + self.viewport_height >= self.content_height - self.threshold

    def on_scroll(
        self,
        offset: float,
        content_height: Optional[float] = None,
        viewport_height: Optional[float] = None,
    ) -> None:
        if content_height is not None:
            self.content_height = content_height
        if viewport_height is not None:
            self.viewport_height = viewport_height

        if offset < self.offset:
            self.user_is_scrolling = True
            self.should_auto_scroll = False
        if self.is_near_bottom(offset):
            self.user_is_scrolling = False
            self.should_auto_scroll = True
        self.offset = offset

    def on_content_size_change(self, content_height: float, is_streaming: bool) -> bool:
        """Record the new content height; True if the view should scroll to end."""
        self.content_height = content_height
        follow = not self.user_is_scrolling and (
            not is_streaming or self.should_auto_scroll
        )
        if follow:
            self.offset = max(0.0, content_height - self.viewport_height)
        return follow
