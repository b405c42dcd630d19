"""
Board service — reads a teacher's answer sheet and applies reactions.

A board is the sheet bound in the owner's config (spreadsheetId +
sheetName). The first row is the header row. Besides the form columns the
sheet carries four system columns, matched by exact upper-cased header:

  UNDERSTAND | LIKE | CURIOUS   — '|'-separated emails of reacting users
  HIGHLIGHT                     — 'TRUE' / 'FALSE'

Reaction rules (one reaction per user per row):
  - reacting with the type you already have removes it
  - reacting with another type moves your reaction there

Which form column holds the answer, reason, name and class comes from
config.columnMapping (header names). Row numbers are 1-based sheet rows,
so the first answer is row 2.
"""
import logging
import random

from services.config_service import board_binding
from services.error_service import ConfigurationError, ValidationError
from services.formatters import format_timestamp, mask_id
from services.sheets_service import a1_range, column_letter
from services.user_store import find_column

logger = logging.getLogger(__name__)

REACTION_TYPES = ("UNDERSTAND", "LIKE", "CURIOUS")
HIGHLIGHT_COLUMN = "HIGHLIGHT"
SYSTEM_COLUMNS = REACTION_TYPES + (HIGHLIGHT_COLUMN,)

TIMESTAMP_KEYWORDS = ("timestamp", "タイムスタンプ")
SORT_ORDERS = ("newest", "oldest", "reactions", "random")

MAPPING_KEYS = ("answer", "reason", "name", "class")


def parse_reaction_users(cell_value):
    """'a@x|b@x' → ['a@x', 'b@x'] (blank entries dropped)."""
    text = str(cell_value or "").strip()
    if not text:
        return []
    return [part.strip() for part in text.split("|") if part.strip()]


def serialize_reaction_users(users):
    return "|".join(u for u in users if u and u.strip())


def parse_row_index(row_index):
    """Accept 5, '5' or 'row_5'; data rows start at 2."""
    raw = str(row_index or "").strip()
    if raw.startswith("row_"):
        raw = raw[4:]
    try:
        number = int(raw)
    except ValueError:
        raise ValidationError("rowIndex must be a row number")
    if number < 2:
        raise ValidationError("rowIndex must point at an answer row (2 or greater)")
    return number


def _system_column(headers, name):
    for index, header in enumerate(headers):
        if str(header or "").strip().upper() == name:
            return index
    return -1


def _cell(row, index):
    return row[index] if 0 <= index < len(row) else ""


def extract_reactions(row, headers, viewer_email=None):
    """Reaction counts and whether viewer_email reacted, per type."""
    reactions = {}
    for reaction_type in REACTION_TYPES:
        users = parse_reaction_users(_cell(row, _system_column(headers, reaction_type)))
        reactions[reaction_type] = {
            "count": len(users),
            "reacted": bool(viewer_email) and viewer_email in users,
        }
    return reactions


def extract_highlight(row, headers):
    value = str(_cell(row, _system_column(headers, HIGHLIGHT_COLUMN))).strip().upper()
    return value in ("TRUE", "1", "YES")


def _require_binding(owner):
    spreadsheet_id, sheet_name = board_binding(owner.config)
    if not spreadsheet_id or not sheet_name:
        raise ConfigurationError("Board configuration incomplete: no spreadsheet bound")
    return spreadsheet_id, sheet_name


def _resolve_mapping(headers, config):
    """Header index for answer/reason/name/class; -1 when unmapped."""
    mapping = config.get("columnMapping") or {}
    resolved = {}
    for key in MAPPING_KEYS:
        header_name = mapping.get(key)
        resolved[key] = find_column(headers, header_name) if header_name else -1
    if resolved["answer"] == -1:
        # Fall back to the first form column that is neither system nor timestamp
        for index, header in enumerate(headers):
            label = str(header or "").strip()
            if not label or label.upper() in SYSTEM_COLUMNS:
                continue
            if any(k in label.lower() for k in TIMESTAMP_KEYWORDS):
                continue
            resolved["answer"] = index
            break
    return resolved


def get_board_data(registry, owner, viewer_email=None, options=None, is_editor=False):
    """
    Read the owner's bound sheet and shape it for the board page.

    Args:
        registry: ServiceRegistry.
        owner: UserRecord of the board owner.
        viewer_email: Email of the viewer (marks 'reacted'), may be None.
        options: {sortOrder, limit}
        is_editor: Owners and admins always see names.

    Returns:
        dict: {header, questionText, sheetName, rows, totalCount}
    """
    options = options or {}
    config = owner.config
    spreadsheet_id, sheet_name = _require_binding(owner)

    values = registry.sheets().get_values(spreadsheet_id, a1_range(sheet_name))
    if not values:
        return {"header": "", "questionText": "", "sheetName": sheet_name,
                "rows": [], "totalCount": 0}

    headers = [str(h or "").strip() for h in values[0]]
    mapping = _resolve_mapping(headers, config)
    display = config.get("displaySettings") or {}
    show_names = is_editor or bool(display.get("showNames"))
    timestamp_index = next(
        (i for i, h in enumerate(headers) if any(k in h.lower() for k in TIMESTAMP_KEYWORDS)),
        -1,
    )

    rows = []
    for offset, row in enumerate(values[1:]):
        if not any(str(c).strip() for c in row):
            continue
        item = {
            "rowIndex": offset + 2,
            "timestamp": format_timestamp(_cell(row, timestamp_index)),
            "rawTimestamp": _cell(row, timestamp_index),
            "answer": _cell(row, mapping["answer"]),
            "reason": _cell(row, mapping["reason"]),
            "class": _cell(row, mapping["class"]),
            "name": _cell(row, mapping["name"]) if show_names else "",
            "reactions": extract_reactions(row, headers, viewer_email),
            "highlight": extract_highlight(row, headers),
        }
        rows.append(item)

    rows = _sort_rows(rows, options.get("sortOrder") or "newest")
    total = len(rows)
    limit = options.get("limit")
    if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
        rows = rows[:limit]

    question = headers[mapping["answer"]] if mapping["answer"] != -1 else ""
    logger.info(
        "[OK] Board data read for %s: %d row(s)", mask_id(owner.user_id), total
    )
    return {
        "header": question,
        "questionText": question,
        "sheetName": sheet_name,
        "rows": rows,
        "totalCount": total,
    }


def _sort_rows(rows, sort_order):
    if sort_order not in SORT_ORDERS:
        raise ValidationError(f"sortOrder must be one of: {', '.join(SORT_ORDERS)}")
    if sort_order == "oldest":
        return sorted(rows, key=lambda r: r["rowIndex"])
    if sort_order == "reactions":
        return sorted(
            rows,
            key=lambda r: (sum(v["count"] for v in r["reactions"].values()), r["rowIndex"]),
            reverse=True,
        )
    if sort_order == "random":
        shuffled = list(rows)
        random.shuffle(shuffled)
        return shuffled
    return sorted(rows, key=lambda r: r["rowIndex"], reverse=True)


def add_reaction(registry, owner, row_index, reaction_type, actor_email):
    """
    Toggle actor_email's reaction on one answer row.

    Returns:
        dict: {action: 'added'|'removed', userReaction, reactions}
    """
    if reaction_type not in REACTION_TYPES:
        raise ValidationError("Invalid reaction type")
    if not actor_email:
        raise ValidationError("A signed-in user is required to react")
    row_number = parse_row_index(row_index)
    spreadsheet_id, sheet_name = _require_binding(owner)
    client = registry.sheets()

    header_rows = client.get_values(spreadsheet_id, a1_range(sheet_name, "1:1"))
    headers = header_rows[0] if header_rows else []
    columns = {}
    for reaction in REACTION_TYPES:
        index = _system_column(headers, reaction)
        if index == -1:
            raise ConfigurationError(
                f"Reaction column '{reaction}' not found; reconnect the sheet to add it"
            )
        columns[reaction] = index + 1

    min_col, max_col = min(columns.values()), max(columns.values())
    cell_range = a1_range(
        sheet_name,
        f"{column_letter(min_col)}{row_number}:{column_letter(max_col)}{row_number}",
    )
    current_rows = client.get_values(spreadsheet_id, cell_range)
    row_data = list(current_rows[0]) if current_rows else []
    row_data += [""] * (max_col - min_col + 1 - len(row_data))

    current = {t: parse_reaction_users(row_data[columns[t] - min_col]) for t in REACTION_TYPES}
    existing = next((t for t in REACTION_TYPES if actor_email in current[t]), None)

    updated = {t: list(users) for t, users in current.items()}
    if existing == reaction_type:
        updated[reaction_type] = [u for u in updated[reaction_type] if u != actor_email]
        action, user_reaction = "removed", None
    else:
        if existing:
            updated[existing] = [u for u in updated[existing] if u != actor_email]
        updated[reaction_type].append(actor_email)
        action, user_reaction = "added", reaction_type

    # Only reaction cells are written; form cells between them stay untouched
    for reaction in REACTION_TYPES:
        if updated[reaction] == current[reaction]:
            continue
        cell = a1_range(sheet_name, f"{column_letter(columns[reaction])}{row_number}")
        client.update_values(
            spreadsheet_id, cell, [[serialize_reaction_users(updated[reaction])]]
        )

    logger.info(
        "[OK] Reaction %s %s on row %d of %s",
        reaction_type, action, row_number, mask_id(owner.user_id),
    )
    return {
        "action": action,
        "userReaction": user_reaction,
        "reactions": {
            t: {"count": len(updated[t]), "reacted": actor_email in updated[t]}
            for t in REACTION_TYPES
        },
    }


def toggle_highlight(registry, owner, row_index):
    """Flip the HIGHLIGHT cell of one answer row. Returns {highlighted}."""
    row_number = parse_row_index(row_index)
    spreadsheet_id, sheet_name = _require_binding(owner)
    client = registry.sheets()

    header_rows = client.get_values(spreadsheet_id, a1_range(sheet_name, "1:1"))
    headers = header_rows[0] if header_rows else []
    index = _system_column(headers, HIGHLIGHT_COLUMN)
    if index == -1:
        raise ConfigurationError("HIGHLIGHT column not found; reconnect the sheet to add it")

    cell = a1_range(sheet_name, f"{column_letter(index + 1)}{row_number}")
    current_rows = client.get_values(spreadsheet_id, cell)
    current = str(current_rows[0][0]).strip().upper() if current_rows and current_rows[0] else ""
    new_value = "FALSE" if current == "TRUE" else "TRUE"
    client.update_values(spreadsheet_id, cell, [[new_value]])

    logger.info("[OK] Highlight row %d of %s -> %s", row_number, mask_id(owner.user_id), new_value)
    return {"highlighted": new_value == "TRUE"}


def ensure_system_columns(registry, spreadsheet_id, sheet_name):
    """
    Append any missing UNDERSTAND/LIKE/CURIOUS/HIGHLIGHT headers.

    Returns:
        list of the column names that were added.
    """
    client = registry.sheets()
    header_rows = client.get_values(spreadsheet_id, a1_range(sheet_name, "1:1"))
    headers = list(header_rows[0]) if header_rows else []
    missing = [name for name in SYSTEM_COLUMNS if _system_column(headers, name) == -1]
    if not missing:
        return []
    start = len(headers) + 1
    end = start + len(missing) - 1
    client.update_values(
        spreadsheet_id,
        a1_range(sheet_name, f"{column_letter(start)}1:{column_letter(end)}1"),
        [missing],
    )
    logger.info("[OK] Added system columns %s to %s", ",".join(missing), sheet_name)
    return missing


def list_sheet_names(registry, spreadsheet_id):
    """Sheet titles of a spreadsheet the service account can read."""
    if not spreadsheet_id:
        raise ValidationError("spreadsheetId is required")
    return sorted(registry.sheets().sheet_titles(spreadsheet_id))


def get_sheet_headers(registry, spreadsheet_id, sheet_name):
    """Header row of a sheet, system columns excluded (for column mapping)."""
    if not spreadsheet_id or not sheet_name:
        raise ValidationError("spreadsheetId and sheetName are required")
    header_rows = registry.sheets().get_values(spreadsheet_id, a1_range(sheet_name, "1:1"))
    headers = [str(h or "").strip() for h in (header_rows[0] if header_rows else [])]
    return [h for h in headers if h and h.upper() not in SYSTEM_COLUMNS]
