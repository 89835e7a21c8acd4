# Gmail only accepts colors from its fixed palette.

DEFAULT_LABEL_COLOR = {
    "backgroundColor": "#666666",  # gray
    "textColor": "#ffffff",
}

LABEL_COLORS = {
    "newsletter": {
        "backgroundColor": "#a4c2f4",  # light blue
        "textColor": "#000000",
    },
    "work": {
        "backgroundColor": "#3c78d8",  # blue
        "textColor": "#ffffff",
    },
    "personal": {
        "backgroundColor": "#16a766",  # green
        "textColor": "#ffffff",
    },
    "shopping": {
        "backgroundColor": "#f691b3",  # pink
        "textColor": "#ffffff",
    },
    "support": {
        "backgroundColor": "#a479e2",  # purple
        "textColor": "#ffffff",
    },
    "other": DEFAULT_LABEL_COLOR,
}


def color_for(category: str) -> dict:
    return dict(LABEL_COLORS.get((category or "").lower(), DEFAULT_LABEL_COLOR))
