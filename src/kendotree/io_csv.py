"""CSV import/export utilities."""

import csv
import logging
from pathlib import Path
from typing import Optional, Union

from kendotree.models import ENTITY_FIELDS, Competitor, Round, Team

logger = logging.getLogger(__name__)

COMPETITOR_COLUMNS = {"first_name", "last_name"}
TEAM_COLUMNS = {"name"}


class CSVImportError(Exception):
    """Error during CSV import."""
    pass


def parse_entity(row: dict, entity: str, row_num: int) -> Optional[int]:
    """Parse an optional entity id column (empty means no entity)."""
    value = (row.get(entity) or "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise CSVImportError(f"Row {row_num}: '{entity}' must be a number, got '{value}'")


def validate_participant_row(row: dict, row_num: int, is_team: bool = False) -> dict:
    """Validate a competitor or team row from CSV.

    Args:
        row: Dictionary with CSV columns
        row_num: Row number for error messages
        is_team: Validate as a team row

    Returns:
        Validated dictionary with cleaned data

    Raises:
        CSVImportError: If validation fails
    """
    required_fields = TEAM_COLUMNS if is_team else COMPETITOR_COLUMNS
    missing = [f for f in sorted(required_fields) if not (row.get(f) or "").strip()]
    if missing:
        raise CSVImportError(
            f"Row {row_num}: " + ", ".join(f"Missing required field '{f}'" for f in missing)
        )

    validated = {f: row[f].strip() for f in required_fields}
    for entity in ENTITY_FIELDS:
        validated[f"{entity}_id"] = parse_entity(row, entity, row_num)
    return validated


def import_participants_csv(csv_path: str, is_team: bool = False) -> list[Union[Competitor, Team]]:
    """Import competitors or teams from CSV file.

    CSV format (entity columns are optional):
        first_name,last_name,federation,association,club
        Taro,Yamada,1,3,12

    or, for teams:
        name,federation,association,club
        Kyoto Dojo,1,3,12

    Args:
        csv_path: Path to CSV file
        is_team: Import teams instead of competitors

    Returns:
        List of Competitor or Team objects ready to be saved (id=0)

    Raises:
        CSVImportError: If file not found or validation fails
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise CSVImportError(f"CSV file not found: {csv_path}")

    participants = []

    with open(csv_file, "r", encoding="utf-8") as f:
        reader = csv.DictReader(f)

        # Validate header
        required_cols = TEAM_COLUMNS if is_team else COMPETITOR_COLUMNS
        if not required_cols.issubset(set(reader.fieldnames or [])):
            missing = required_cols - set(reader.fieldnames or [])
            raise CSVImportError(f"CSV missing required columns: {sorted(missing)}")

        for row_num, row in enumerate(reader, start=2):  # Row 1 is the header
            validated = validate_participant_row(row, row_num, is_team)
            if is_team:
                participants.append(Team(id=0, **validated))
            else:
                participants.append(Competitor(id=0, **validated))

    logger.info("Validated %d %s from %s", len(participants), "teams" if is_team else "competitors", csv_path)
    return participants


def export_rounds_csv(rounds: list[Round], names_by_id: dict, path: str):
    """Export rounds to CSV, one line per seated fighter.

    Args:
        rounds: List of Round objects
        names_by_id: Dictionary mapping fighter id to display name
        path: Output CSV path
    """
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["Area", "Order", "Position", "Member_ID", "Member_Name"])

        for round_ in rounds:
            for position, member_id in enumerate(round_.member_ids, start=1):
                writer.writerow([
                    round_.area,
                    round_.order,
                    position,
                    member_id,
                    names_by_id.get(member_id, ""),
                ])
