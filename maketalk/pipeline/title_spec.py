"""Reading and writing the externally authored title_cards.json."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from maketalk.errors import TitleSpecInvalid
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.schemas.title_cards import TitleCardDocument
from maketalk.schemas.work import parse_section_id

logger = logging.getLogger(__name__)


def load_title_spec(path: Path) -> Optional[TitleCardDocument]:
    """
    Parse and validate a title spec.

    Returns:
        The document, or None when the file does not exist

    Raises:
        TitleSpecInvalid: If the file is not valid JSON or has the wrong shape
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return TitleCardDocument.model_validate(data)
    except json.JSONDecodeError as e:
        raise TitleSpecInvalid(f"{path.name} is not valid JSON: {e}") from e
    except ValidationError as e:
        details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise TitleSpecInvalid(f"{path.name} does not match the expected format", details) from e


def write_title_spec(document: TitleCardDocument, path: Path) -> None:
    path.write_text(document.model_dump_json(indent=2) + "\n", encoding="utf-8")


def section_ids(ctx: StageContext) -> list[str]:
    """Sorted ids of the canonical section videos."""
    ids = set()
    for path in ctx.workspace.list_files(Stage.MERGE, "*-section.mp4"):
        section_id = parse_section_id(path.name)
        if section_id:
            ids.add(section_id)
    return sorted(ids)


async def offer_existing_spec(ctx: StageContext, document: Optional[TitleCardDocument], ids: list[str]) -> bool:
    """
    Ask whether to reuse an existing spec; only asked when it covers every section.

    Returns:
        True if the operator chose to reuse it
    """
    if document is None:
        return False
    missing = document.missing_sections(ids)
    if missing:
        logger.warning(
            f"Existing {ctx.workspace.title_cards_file.name} has no title card for section(s) "
            f"{', '.join(missing)}"
        )
        return False

    logger.info(f"Existing {ctx.workspace.title_cards_file.name} has title cards for all video sections")
    if await ctx.prompter.confirm("Do you want to use the existing title cards?"):
        ctx.status(f"Using existing {ctx.workspace.title_cards_file.name}")
        return True
    return False
