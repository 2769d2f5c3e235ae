"""
Interaction session: what the visitor is doing right now.

Holds the rating being composed and which modal is open. Closing a modal
always clears its selection, so a half-finished rating for one project can
never end up attached to the next one.
"""

from portfolio_ratings.models import Rating, Selection, SessionState, SubmitResult, coerce_project_id
from portfolio_ratings.store import RatingStore


class InteractionSession:

    def __init__(self, store: RatingStore):
        self.store = store
        self.state = SessionState()

    # ---- Rating modal ----

    def open_rating_modal(self, project_id, stars: int = 0) -> None:
        self.state.selected_project_id = coerce_project_id(project_id)
        self.state.selected_stars = int(stars or 0)
        self.state.draft_comment = ""
        self.state.rating_modal_open = True

    def select_stars(self, stars: int) -> None:
        self.state.selected_stars = int(stars or 0)

    def set_comment(self, comment: str) -> None:
        self.state.draft_comment = comment or ""

    def close_rating_modal(self) -> None:
        self.state.rating_modal_open = False
        self._clear_selection()

    def selection(self) -> Selection:
        return Selection(
            project_id=self.state.selected_project_id,
            stars=self.state.selected_stars,
            comment=self.state.draft_comment,
        )

    def submit(self) -> SubmitResult:
        """
        Hand the current selection to the store.
        A rejected selection (no stars yet) or a refusal while another submit
        is in flight leaves the modal open with the draft intact. Anything
        else closes it and clears the draft.
        """
        result = self.store.submit_rating(self.selection())
        if result.success:
            self.close_rating_modal()
        self._sync()
        if not result.success:
            self.state.last_error = result.message or ""
        return result

    # ---- Comments modal ----

    def show_all_comments(self, project_id) -> None:
        self.state.selected_project_id = coerce_project_id(project_id)
        self.state.comments_modal_open = True

    def close_comments_modal(self) -> None:
        self.state.comments_modal_open = False
        self.state.selected_project_id = None

    def all_comments(self) -> list[Rating]:
        """Every comment for the selected project, newest first."""
        if self.state.selected_project_id is None:
            return []
        return self.store.all_comments(self.state.selected_project_id)

    # ---- Loading ----

    def refresh(self) -> bool:
        loaded = self.store.load_ratings()
        self._sync()
        return loaded

    def _sync(self) -> None:
        self.state.loading = self.store.loading
        self.state.last_error = self.store.last_error

    def _clear_selection(self) -> None:
        self.state.selected_project_id = None
        self.state.selected_stars = 0
        self.state.draft_comment = ""
