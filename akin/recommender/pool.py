"""Bounded worker pool shared by the three batch stages.

Per-user work is independent, so each stage hands a per-user callable to
``run_for_users``. The call returns only once every user's task has settled.
If any task failed, the first failure (in enumeration order) is raised as a
StorageError afterwards. Users that finished keep their results.
"""

import logging
import time
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Sequence

from akin.recommender.config import validate_concurrency
from akin.recommender.exceptions import AkinException, StorageError

# Configure module logger
logger = logging.getLogger(__name__)


def run_for_users(
    stage: str,
    user_ids: Sequence[Any],
    task: Callable[[Any], Any],
    concurrency: int,
) -> Dict[Any, Any]:
    """Run ``task(user_id)`` for every user on a bounded thread pool.

    Args:
        stage: Stage name used in logs and error details.
        user_ids: Users to process. No ordering is guaranteed between them.
        task: Per-user callable.
        concurrency: Maximum number of users processed at a time.

    Returns:
        Mapping of user ID to the task's return value.

    Raises:
        ConfigurationError: If concurrency is not a positive integer.
        StorageError: If any user's task failed.
    """
    validate_concurrency(concurrency)
    start_time = time.time()

    with ThreadPoolExecutor(
        max_workers=concurrency, thread_name_prefix=f"akin-{stage}"
    ) as executor:
        futures = {user_id: executor.submit(task, user_id) for user_id in user_ids}
        wait(list(futures.values()), return_when=ALL_COMPLETED)

    results: Dict[Any, Any] = {}
    failures: List[Any] = []
    for user_id, future in futures.items():
        error = future.exception()
        if error is None:
            results[user_id] = future.result()
        else:
            failures.append((user_id, error))

    duration_ms = round((time.time() - start_time) * 1000, 2)

    if failures:
        user_id, error = failures[0]
        logger.error(
            f"Stage {stage} failed for {len(failures)} of {len(futures)} users",
            extra={
                "stage": stage,
                "failed_users": len(failures),
                "num_users": len(futures),
                "duration_ms": duration_ms,
            },
            exc_info=error,
        )
        if isinstance(error, StorageError):
            raise error
        reason = error.message if isinstance(error, AkinException) else str(error)
        raise StorageError(
            f"Stage {stage} failed for user {user_id}: {reason}",
            error=error,
            details={"stage": stage, "user_id": user_id},
        ) from error

    logger.debug(
        f"Stage {stage} processed {len(results)} users",
        extra={"stage": stage, "num_users": len(results), "duration_ms": duration_ms},
    )
    return results
