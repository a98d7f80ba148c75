"""
Sheet layout engine.

Pure geometry and pagination for the one physical label stock we print on:
US letter sheets carrying 10 adhesive labels of 4" x 2" in a 5 x 2 grid.

Slot addressing:
    A "global slot" g counts slots across pages: g = page * 10 + slot_on_page.
    The first ``start_position`` global slots are already used (partially
    used sheet), so payload i lands in global slot start_position + i.
    Slots whose payload index falls outside [0, item_count) stay blank.

Coordinates are in inches with a top-left origin (row 0 is the top row).
SlotRect.to_pdf_origin() converts a rectangle to PDF points with the
bottom-left origin the renderer draws in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple


# =============================================================================
# PHYSICAL CONSTANTS (inches)
# =============================================================================

ROWS = 5
COLUMNS = 2
LABELS_PER_SHEET = ROWS * COLUMNS

SHEET_WIDTH = 8.5
SHEET_HEIGHT = 11.0
LABEL_WIDTH = 4.0
LABEL_HEIGHT = 2.0
MARGIN_TOP = 0.5
MARGIN_LEFT = 0.15625
HORIZONTAL_GUTTER = 0.1875
VERTICAL_GUTTER = 0.0

POINTS_PER_INCH = 72.0


@dataclass(frozen=True)
class SheetPosition:
    """Where a global slot lives: (page, row, column)."""

    page: int
    row: int
    column: int

    @property
    def slot_on_page(self) -> int:
        return self.row * COLUMNS + self.column


@dataclass(frozen=True)
class SlotRect:
    """A label rectangle in inches, top-left origin."""

    x: float
    y: float
    width: float
    height: float

    def to_points(self) -> Tuple[float, float, float, float]:
        return (
            self.x * POINTS_PER_INCH,
            self.y * POINTS_PER_INCH,
            self.width * POINTS_PER_INCH,
            self.height * POINTS_PER_INCH,
        )

    def to_pdf_origin(self, page_height: float = SHEET_HEIGHT) -> Tuple[float, float, float, float]:
        """(x, y, w, h) in points with y measured up from the bottom edge."""
        x, y, w, h = self.to_points()
        return x, page_height * POINTS_PER_INCH - y - h, w, h


@dataclass(frozen=True)
class SlotAssignment:
    """One slot of a rendered document and the payload index drawn in it."""

    position: SheetPosition
    payload_index: Optional[int]

    @property
    def is_blank(self) -> bool:
        return self.payload_index is None


def page_count(start_position: int, item_count: int) -> int:
    """
    Sheets needed to print ``item_count`` labels after ``start_position`` used slots.

    Always at least 1, so an empty job still yields a (blank) page.
    """
    if start_position < 0:
        raise ValueError(f"start_position must be >= 0, got {start_position}")
    if item_count < 0:
        raise ValueError(f"item_count must be >= 0, got {item_count}")
    used = start_position + item_count
    return max(1, -(-used // LABELS_PER_SHEET))


def slot_position(global_slot: int) -> SheetPosition:
    """Map a global slot index to (page, row, column)."""
    if global_slot < 0:
        raise ValueError(f"global_slot must be >= 0, got {global_slot}")
    page, slot = divmod(global_slot, LABELS_PER_SHEET)
    return SheetPosition(page=page, row=slot // COLUMNS, column=slot % COLUMNS)


def payload_index(global_slot: int, start_position: int, item_count: int) -> Optional[int]:
    """Payload drawn in ``global_slot``, or None for a blank slot."""
    index = global_slot - start_position
    if 0 <= index < item_count:
        return index
    return None


def slot_rect(slot_on_page: int) -> SlotRect:
    """Physical rectangle for a slot on any page."""
    if not 0 <= slot_on_page < LABELS_PER_SHEET:
        raise ValueError(f"slot_on_page must be in [0, {LABELS_PER_SHEET}), got {slot_on_page}")
    row, column = divmod(slot_on_page, COLUMNS)
    return SlotRect(
        x=MARGIN_LEFT + column * (LABEL_WIDTH + HORIZONTAL_GUTTER),
        y=MARGIN_TOP + row * (LABEL_HEIGHT + VERTICAL_GUTTER),
        width=LABEL_WIDTH,
        height=LABEL_HEIGHT,
    )


def iter_slots(start_position: int, item_count: int) -> Iterator[SlotAssignment]:
    """
    Every slot of the document in page order, blanks included.

    Yields page_count(start_position, item_count) * LABELS_PER_SHEET
    assignments; each payload index in [0, item_count) appears exactly once.
    """
    total = page_count(start_position, item_count) * LABELS_PER_SHEET
    for g in range(total):
        yield SlotAssignment(
            position=slot_position(g),
            payload_index=payload_index(g, start_position, item_count),
        )
