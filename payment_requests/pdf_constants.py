"""Page geometry, colours and font sizes for the payment request PDF.

Coordinates are points with a top-left origin on a US Letter page.
"""

PAGE_W = 612
PAGE_H = 792

MARGIN_LEFT = 48
MARGIN_RIGHT = 564
MARGIN_TOP = 48
PAGE_BOTTOM = 720
FOOTER_Y = 760

# Header
TITLE_Y = 64.0
META_LABEL_RIGHT = 478
META_FIRST_Y = 52.0
META_LINE_H = 15.0
URGENCY_Y = 90.0

# Bill-to / project blocks
PARTY_LABEL_Y = 130.0
PARTY_FIRST_Y = 147.0
PARTY_LINE_H = 14.0
PROJECT_X = 318
PARTY_COLUMN_W = 240

SECTION_GAP = 22.0

# Items table
BAR_H = 20
BAR_RADIUS = 4.0
BAR_TEXT_OFFSET = 13.5
COL_ITEM_X = 56
COL_DESC_X = 186
COL_DESC_W = 150
COL_QTY_CENTER = 372
COL_RATE_RIGHT = 470
COL_AMOUNT_RIGHT = 556
ITEM_ROW_H = 18.0
ITEM_LINE_H = 12.0
ITEM_NAME_W = 124

# Totals
TOTALS_LABEL_RIGHT = 470
TOTAL_ROW_H = 17.0

# Pagination capacities assuming single-line rows.
FIRST_PAGE_CAPACITY = 24
CONT_PAGE_CAPACITY = 36

COLOR_TITLE = (58, 58, 58)
COLOR_LABEL = (105, 105, 105)
COLOR_TEXT = (70, 70, 70)
COLOR_MUTED = (130, 130, 130)
COLOR_BAR = (58, 58, 58)
COLOR_BAR_TEXT = (234, 234, 234)
COLOR_RULE = (210, 210, 210)

URGENCY_COLORS = {
    "low": (40, 167, 69),
    "high": (255, 193, 7),
    "urgent": (220, 53, 69),
}

FONT_SIZE_TITLE = 22
FONT_SIZE_HEADING = 11
FONT_SIZE_URGENCY = 13
FONT_SIZE_NORMAL = 10
FONT_SIZE_SMALL = 8
