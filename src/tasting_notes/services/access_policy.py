"""
# Access Policy

Single decision point for "may this viewer read this note?". Every read path (feeds,
activity enrichment, single-note reads, bookmarks) and every mutation made by a
non-owner (like, comment, bookmark) goes through `can_view` / `ensure_can_view`.

## Rules

1.  The owner can always read their note.
2.  An explicit recipient (`viewer in note.shared_with`) can read it on any tier.
3.  Public notes are readable by everyone.
4.  Friends notes are readable by everyone when the owner's profile is public, and by the
    owner's followers when it is private. An unknown owner denies.
5.  Anything else is denied.

The owner record is only consulted for rule 4; `needs_owner()` tells callers when it is
worth fetching.
"""

from typing import Optional

from tasting_notes.exceptions import PermissionDeniedError
from tasting_notes.models.note_models import NoteDocument, NoteVisibility
from tasting_notes.models.user_models import UserDocument


def needs_owner(viewer_id: str, note: NoteDocument) -> bool:
    """True when the decision depends on the owner's privacy flag and followers."""
    return (
        note.visibility == NoteVisibility.FRIENDS
        and viewer_id != note.owner_id
        and viewer_id not in note.shared_with
    )


def can_view(viewer_id: str, note: NoteDocument, owner: Optional[UserDocument] = None) -> bool:
    if viewer_id == note.owner_id:
        return True
    if viewer_id in note.shared_with:
        return True
    if note.visibility == NoteVisibility.PUBLIC:
        return True
    if note.visibility == NoteVisibility.FRIENDS:
        if owner is None or owner.id != note.owner_id:
            return False
        if not owner.is_private:
            return True
        return viewer_id in owner.followers
    return False


def ensure_can_view(viewer_id: str, note: NoteDocument, owner: Optional[UserDocument] = None) -> None:
    """Raise `PermissionDeniedError` unless `can_view` allows the viewer."""
    if not can_view(viewer_id, note, owner):
        raise PermissionDeniedError(f"You do not have access to note {note.id}")
