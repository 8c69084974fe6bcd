"""Uniform per-item failure isolation for one stage.

Items run strictly one after another in the order supplied. A failing item
is logged with its identifier and recorded in StageResult.failed; the next
item runs regardless. Only FatalPrecondition (and cancellation) escapes,
because those mean the whole run can not continue.
"""

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, TypeVar, Union

from maketalk.errors import FatalPrecondition
from maketalk.orchestrator.state import Stage
from maketalk.schemas.work import SectionGroup, StageResult, WorkItem

logger = logging.getLogger(__name__)

Item = TypeVar("Item", WorkItem, SectionGroup)
Worker = Callable[[Item], Awaitable[Optional[Path]]]


async def run_stage(
    stage: Stage,
    items: Sequence[Union[WorkItem, SectionGroup]],
    worker: Worker,
) -> StageResult:
    """
    Run `worker` over `items` and collect the outcome.

    The worker returns the path it produced. An item only counts as
    succeeded when that file exists afterwards.

    Args:
        stage: Stage the items belong to
        items: Work items in processing order
        worker: Async callable doing the work for one item

    Returns:
        StageResult with succeeded/failed items and their outputs

    Raises:
        FatalPrecondition: Propagated unchanged from the worker
    """
    result = StageResult(stage=stage)
    total = len(items)

    for index, item in enumerate(items, start=1):
        logger.debug(f"[{stage.value}] {index}/{total}: {item.item_id}")
        try:
            output = await worker(item)
            if output is not None and not Path(output).exists():
                raise FileNotFoundError(f"expected output {Path(output).name} was not produced")
        except FatalPrecondition:
            raise
        except Exception as e:
            logger.error(f"[{stage.value}] {item.item_id} failed: {e}")
            result.failed.append(item)
            result.errors[item.item_id] = str(e)
            continue

        result.succeeded.append(item)
        if output is not None:
            result.outputs[item.item_id] = Path(output)

    if result.failed:
        logger.warning(
            f"[{stage.value}] {len(result.succeeded)} of {total} item(s) succeeded; "
            f"failed: {', '.join(result.failed_ids)}"
        )
    return result
